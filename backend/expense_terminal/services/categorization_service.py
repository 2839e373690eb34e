"""Batch categorization of transactions.

A run is prepared synchronously (ownership filtering, vendor keys, cache
lookup) so request-level failures surface as plain HTTP errors, then streamed:
cache hits are applied first, the rest is split into batches that a small pool
of workers sends to the classifier. Every transaction ends up with exactly one
``success`` or ``error`` event and the stream ends with a single ``done``.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from expense_terminal.config import settings
from expense_terminal.core.exceptions import NotFoundError, safe_error_message
from expense_terminal.schemas.categorization import (
    CategorizationEvent,
    CategorizationUpdate,
    DoneEvent,
    ErrorEvent,
    ProgressEvent,
    StatusEvent,
    SuccessEvent,
)
from expense_terminal.services.classification_client import (
    ClassificationClient,
    ClassificationError,
    RepresentativeTransaction,
)
from expense_terminal.services.pattern_cache import VendorPatternCache
from expense_terminal.services.transaction_store import PersistenceError, TransactionStore
from expense_terminal.services.vendor_normalizer import normalize_vendor

logger = structlog.get_logger()

# Keeps running categorization tasks referenced until they finish
_background_tasks: set[asyncio.Task] = set()

_END_OF_STREAM = object()


def _log_run_failure(task: asyncio.Task) -> None:
    """Log a run that crashed, including after its consumer went away."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("categorization_run_failed", error=str(exc)[:200], exc_info=exc)


class RunState(str, Enum):
    COLLECTING = "collecting"
    CACHE_RESOLVING = "cache_resolving"
    AI_QUEUED = "ai_queued"
    BATCHES_IN_FLIGHT = "batches_in_flight"
    COMPLETE = "complete"


@dataclass
class PendingTransaction:
    id: str
    vendor: str
    amount: object
    date: str
    category: str | None
    vendor_key: str
    is_meal: bool = False
    is_travel: bool = False
    # vendor_normalized was computed during this run and must be written back
    key_computed: bool = False

    @property
    def group_key(self) -> str:
        return self.vendor_key or f"id:{self.id}"


@dataclass
class CategorizationRun:
    user_id: str
    transactions: list[PendingTransaction] = field(default_factory=list)
    patterns: dict = field(default_factory=dict)
    state: RunState = RunState.COLLECTING

    def advance(self, state: RunState) -> None:
        logger.info("categorization_state", user_id=self.user_id, previous=self.state.value, state=state.value)
        self.state = state

    @property
    def total(self) -> int:
        return len(self.transactions)


@dataclass
class RunTotals:
    successful: int = 0
    failed: int = 0
    cached: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    # Vendor keys whose cache write failed
    cache_write_failures: set[str] = field(default_factory=set)


class CategorizationService:
    def __init__(
        self,
        store: TransactionStore,
        cache: VendorPatternCache,
        classifier: ClassificationClient,
        batch_size: int | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.classifier = classifier
        self.batch_size = batch_size or settings.categorization_batch_size
        self.concurrency = concurrency or settings.categorization_concurrency

    # ── Phase 1: collect ────────────────────────────

    async def prepare(self, user_id: str, transaction_ids: Sequence[str]) -> CategorizationRun:
        """Load the caller's transactions and resolve the vendor cache.

        Raises:
            NotFoundError: none of the ids belong to the caller.
        """
        run = CategorizationRun(user_id=user_id)
        ids = list(dict.fromkeys(transaction_ids))
        rows = await self.store.fetch_many(user_id, ids)
        if not rows:
            raise NotFoundError("Matching transactions")

        for row in rows:
            key = row.vendor_normalized or normalize_vendor(row.vendor)
            run.transactions.append(
                PendingTransaction(
                    id=row.id,
                    vendor=row.vendor,
                    amount=row.amount,
                    date=row.date.isoformat() if hasattr(row.date, "isoformat") else str(row.date),
                    category=row.category,
                    vendor_key=key,
                    is_meal=bool(row.is_meal),
                    is_travel=bool(row.is_travel),
                    key_computed=not row.vendor_normalized and bool(key),
                )
            )

        run.advance(RunState.CACHE_RESOLVING)
        try:
            run.patterns = await self.cache.lookup_many(user_id, [t.vendor_key for t in run.transactions])
        except SQLAlchemyError as e:
            logger.warning("vendor_cache_unavailable", user_id=user_id, error=str(e)[:200])
            run.patterns = {}

        logger.info(
            "categorization_prepared",
            user_id=user_id,
            requested=len(ids),
            found=run.total,
            cache_hits=len(run.patterns),
        )
        return run

    # ── Phase 2: stream ─────────────────────────────

    async def stream(self, run: CategorizationRun) -> AsyncIterator[CategorizationEvent]:
        """Yield events in completion order.

        Work runs in a background task: if the consumer stops iterating, the
        run still finishes and the remaining events are discarded.
        """
        queue: asyncio.Queue = asyncio.Queue()
        consumer_gone = False

        def emit(event: CategorizationEvent) -> None:
            if not consumer_gone:
                queue.put_nowait(event)

        async def execute() -> None:
            try:
                await self._execute(run, emit)
            finally:
                queue.put_nowait(_END_OF_STREAM)

        task = asyncio.create_task(execute())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        task.add_done_callback(_log_run_failure)

        try:
            while True:
                item = await queue.get()
                if item is _END_OF_STREAM:
                    break
                yield item
        finally:
            consumer_gone = True
            if not task.done():
                logger.info("categorization_consumer_disconnected", user_id=run.user_id)

        # Surface unexpected failures of the run itself
        await task

    async def _execute(self, run: CategorizationRun, emit: Callable[[CategorizationEvent], None]) -> None:
        totals = RunTotals()
        needs_ai = await self._apply_cache_hits(run, totals, emit)

        if totals.cached:
            emit(StatusEvent(message=f"{totals.cached} matched from cache, {len(needs_ai)} need AI"))
        emit(
            ProgressEvent(
                completed=totals.cached,
                total=run.total,
                current="Starting AI categorization..." if needs_ai else "Done",
            )
        )

        run.advance(RunState.AI_QUEUED)
        batches = [needs_ai[i:i + self.batch_size] for i in range(0, len(needs_ai), self.batch_size)]
        if batches:
            run.advance(RunState.BATCHES_IN_FLIGHT)
            await self._run_batches(run, batches, len(needs_ai), totals, emit)

        if totals.cache_write_failures:
            emit(
                StatusEvent(
                    message=(
                        f"{len(totals.cache_write_failures)} vendor pattern(s) could not be saved; "
                        "those vendors will be sent to AI again next time"
                    )
                )
            )

        run.advance(RunState.COMPLETE)
        emit(
            DoneEvent(
                successful=totals.successful,
                failed=totals.failed,
                total=run.total,
                total_input_tokens=totals.input_tokens,
                total_output_tokens=totals.output_tokens,
                cached_count=totals.cached,
            )
        )
        logger.info(
            "categorization_done",
            user_id=run.user_id,
            successful=totals.successful,
            failed=totals.failed,
            cached=totals.cached,
            total=run.total,
            input_tokens=totals.input_tokens,
            output_tokens=totals.output_tokens,
        )

    async def _apply_cache_hits(
        self,
        run: CategorizationRun,
        totals: RunTotals,
        emit: Callable[[CategorizationEvent], None],
    ) -> list[PendingTransaction]:
        needs_ai: list[PendingTransaction] = []
        for txn in run.transactions:
            pattern = run.patterns.get(txn.vendor_key) if txn.vendor_key else None
            if pattern is None or not pattern.category:
                needs_ai.append(txn)
                continue

            try:
                update = CategorizationUpdate.from_pattern(pattern, txn.is_meal, txn.is_travel)
            except PydanticValidationError as e:
                logger.warning(
                    "cached_pattern_invalid",
                    transaction_id=txn.id,
                    vendor=txn.vendor_key,
                    errors=e.error_count(),
                )
                needs_ai.append(txn)
                continue

            try:
                await self._persist(run, txn, update)
            except PersistenceError as e:
                logger.warning("cached_categorization_not_saved", transaction_id=txn.id, error=str(e))
                needs_ai.append(txn)
                continue

            totals.cached += 1
            totals.successful += 1
            emit(SuccessEvent.from_update(txn.id, txn.vendor, update))
        return needs_ai

    async def _run_batches(
        self,
        run: CategorizationRun,
        batches: list[list[PendingTransaction]],
        ai_total: int,
        totals: RunTotals,
        emit: Callable[[CategorizationEvent], None],
    ) -> None:
        work: asyncio.Queue = asyncio.Queue()
        for index, batch in enumerate(batches):
            work.put_nowait((index, batch))

        async def worker() -> None:
            while True:
                try:
                    index, batch = work.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await self._process_batch(run, index, len(batches), batch, ai_total, totals, emit)

        workers = min(self.concurrency, len(batches))
        await asyncio.gather(*(worker() for _ in range(workers)))

    async def _process_batch(
        self,
        run: CategorizationRun,
        index: int,
        batch_count: int,
        batch: list[PendingTransaction],
        ai_total: int,
        totals: RunTotals,
        emit: Callable[[CategorizationEvent], None],
    ) -> None:
        batch_start = index * self.batch_size
        emit(
            ProgressEvent(
                completed=totals.cached + batch_start,
                total=run.total,
                current=f"AI batch {index + 1}/{batch_count} ({len(batch)} txns)",
            )
        )

        # One representative per vendor
        representatives: dict[str, PendingTransaction] = {}
        for txn in batch:
            representatives.setdefault(txn.group_key, txn)

        try:
            outcome = await self.classifier.classify(
                [
                    RepresentativeTransaction(
                        id=rep.id,
                        vendor=rep.vendor,
                        amount=rep.amount,
                        date=rep.date,
                        category=rep.category,
                    )
                    for rep in representatives.values()
                ]
            )
        except ClassificationError as e:
            logger.warning("classification_batch_failed", batch=index + 1, size=len(batch), error=str(e))
            self._fail_all(batch, str(e), totals, emit)
        except Exception as e:
            logger.exception("classification_batch_crashed", batch=index + 1)
            self._fail_all(batch, safe_error_message(str(e), "Categorization failed"), totals, emit)
        else:
            totals.input_tokens += outcome.input_tokens
            totals.output_tokens += outcome.output_tokens
            for txn in batch:
                rep = representatives[txn.group_key]
                result = outcome.results.get(rep.id)
                if result is None:
                    totals.failed += 1
                    emit(ErrorEvent(id=txn.id, vendor=txn.vendor, message="Missing category in AI response"))
                    continue
                await self._apply_result(run, txn, result.to_update(), totals, emit)

        emit(
            ProgressEvent(
                completed=totals.cached + min(batch_start + self.batch_size, ai_total),
                total=run.total,
            )
        )

    async def _apply_result(
        self,
        run: CategorizationRun,
        txn: PendingTransaction,
        update: CategorizationUpdate,
        totals: RunTotals,
        emit: Callable[[CategorizationEvent], None],
    ) -> None:
        try:
            await self._persist(run, txn, update)
        except PersistenceError as e:
            totals.failed += 1
            emit(ErrorEvent(id=txn.id, vendor=txn.vendor, message=safe_error_message(str(e), "DB update failed")))
            return

        totals.successful += 1
        emit(SuccessEvent.from_update(txn.id, txn.vendor, update))

        if txn.vendor_key and not await self.cache.upsert(run.user_id, txn.vendor_key, update):
            totals.cache_write_failures.add(txn.vendor_key)

    async def _persist(self, run: CategorizationRun, txn: PendingTransaction, update: CategorizationUpdate) -> None:
        await self.store.apply_categorization(
            run.user_id,
            txn.id,
            update,
            vendor_normalized=txn.vendor_key if txn.key_computed else None,
        )
        txn.key_computed = False

    @staticmethod
    def _fail_all(
        batch: list[PendingTransaction],
        message: str,
        totals: RunTotals,
        emit: Callable[[CategorizationEvent], None],
    ) -> None:
        for txn in batch:
            totals.failed += 1
            emit(ErrorEvent(id=txn.id, vendor=txn.vendor, message=message))
