"""Vendor name normalization.

Turns a raw bank/card merchant string into the key used everywhere a "same
merchant" notion is needed: vendor pattern cache lookups, auto-sort matching
and similar-transaction search. The same function runs at ingestion time and
at query time.

Examples:
    "STARBUCKS #4821"          → "starbucks"
    "Starbucks Coffee"         → "starbucks"
    "SQ *BLUE BOTTLE COFFEE"   → "blue bottle"
    "AMZN Mktp US*2K4L81"      → "amazon"
    "Amazon.com"               → "amazon"
    "McDonald's F1234"         → "mcdonalds"
"""

import re
import unicodedata

# ── Regex patterns ──────────────────────────────────────────────

_URL_PREFIX_RE = re.compile(r"\b(?:https?://)?www\.")
_DOMAIN_SUFFIX_RE = re.compile(r"\.(?:com|net|org|io|co|us)\b")
_APOSTROPHE_RE = re.compile(r"['’`]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

# ── Token tables ────────────────────────────────────────────────

# Payment processor / card network noise found in front of the merchant name
NOISE_PREFIXES: frozenset[str] = frozenset({
    "sq",
    "tst",
    "pp",
    "sp",
    "paypal",
    "pos",
    "ach",
    "dd",
    "debit",
    "credit",
    "card",
    "checkcard",
    "purchase",
    "authorized",
    "on",
    "recurring",
    "payment",
    "visa",
    "mc",
    "ext",
})

# Legal forms and generic descriptors trailing the merchant name
NOISE_SUFFIXES: frozenset[str] = frozenset({
    "inc",
    "llc",
    "ltd",
    "co",
    "corp",
    "corporation",
    "company",
    "store",
    "stores",
    "coffee",
    "restaurant",
    "mktp",
    "marketplace",
    "us",
    "usa",
    "com",
})

ALIASES: dict[str, str] = {
    "amzn": "amazon",
    "wal": "walmart",
    "wm": "walmart",
}

_MAX_PASSES = 8


# ── Public API ──────────────────────────────────────────────────


def normalize_vendor(raw_vendor: str | None) -> str:
    """Return the canonical lookup key for a raw vendor string.

    Total and deterministic: empty or garbage input yields a degenerate but
    stable key (possibly ""). Idempotent: ``normalize_vendor(k) == k`` for any
    key ``k`` this function returns.
    """
    if not raw_vendor:
        return ""

    key = _normalize_pass(_fold(raw_vendor))
    # Each pass only removes tokens, so this converges quickly.
    for _ in range(_MAX_PASSES):
        next_key = _normalize_pass(key)
        if next_key == key:
            break
        key = next_key
    return key


# ── Helpers ─────────────────────────────────────────────────────


def _fold(value: str) -> str:
    """ASCII-fold, lower-case and strip URL decorations."""
    folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    folded = folded.lower()
    folded = _URL_PREFIX_RE.sub("", folded)
    folded = _DOMAIN_SUFFIX_RE.sub(" ", folded)
    return _APOSTROPHE_RE.sub("", folded)


def _normalize_pass(value: str) -> str:
    tokens = [t for t in _NON_ALNUM_RE.split(value) if t]
    if not tokens:
        return ""

    tokens = [ALIASES.get(t, t) for t in tokens]

    kept = [t for i, t in enumerate(tokens) if not _is_identifier(t, i)]
    if not kept:
        # Only ids/numbers: keep them rather than collapse every such vendor to ""
        kept = tokens

    while len(kept) > 1 and kept[0] in NOISE_PREFIXES:
        kept.pop(0)
    while len(kept) > 1 and kept[-1] in NOISE_SUFFIXES:
        kept.pop()

    return " ".join(kept)


def _is_identifier(token: str, position: int) -> bool:
    """Store numbers, terminal ids, dates and reference codes."""
    digits = sum(c.isdigit() for c in token)
    if digits >= 3:
        return True
    # A leading short number is part of the name ("7 eleven")
    return position > 0 and token.isdigit()
