"""
Result Batcher

Frames ranked result sets into bounded micro-batches to reduce per-frame
overhead on the delivery channel without adding perceptible latency.

A batch is emitted when it holds max_batch_size hits, or when a partial batch
has waited max_wait_ms, whichever comes first. Empty result sets produce no
batch. Hits are never re-ordered, and one batch never mixes two result sets.

Wire format (one message per batch): a JSON array of hits
    [{"id": 7, "title": "Samsung Galaxy", "description": "...", "score": 0.61}, ...]

Usage:
    batcher = ResultBatcher(BatcherConfig(max_batch_size=10, max_wait_ms=10))
    async for batch in batcher.stream("u1", engine.next_result):
        await websocket.send_text(encode_batch(batch))
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter
from searchstream.core.logging import get_logger
from searchstream.core.metrics import search_serialization_errors_total
from searchstream.core.search_errors import SerializationError
from searchstream.schemas.search import RankedHit

logger = get_logger(__name__)

EMPTY_BATCH_MESSAGE = "[]"

_BATCH_ADAPTER = TypeAdapter(Tuple[RankedHit, ...])


@dataclass
class BatcherConfig:
    """Configuration for result batching."""

    max_batch_size: int = 10  # Hits per batch before forced flush
    max_wait_ms: float = 10.0  # Longest a partial batch may wait

    def __post_init__(self):
        if self.max_batch_size <= 0:
            raise ValueError("max_batch_size must be > 0")
        if self.max_wait_ms < 0:
            raise ValueError("max_wait_ms must be >= 0")


@dataclass(frozen=True)
class ResultBatch:
    """One outbound delivery unit."""

    session_id: str
    hits: Tuple[RankedHit, ...]

    def __len__(self) -> int:
        return len(self.hits)


def encode_batch(batch: ResultBatch) -> str:
    """Serialize a batch as a JSON array; "[]" if it cannot be encoded."""
    try:
        return _BATCH_ADAPTER.dump_json(batch.hits).decode("utf-8")
    except (TypeError, ValueError) as e:
        error = SerializationError(str(e))
        search_serialization_errors_total.inc()
        logger.warning(
            "batch_serialization_failed",
            session_id=batch.session_id,
            code=error.code,
            error=str(e),
        )
        return EMPTY_BATCH_MESSAGE


class ResultBatcher:
    """Size-or-window micro-batching of ranked result sets."""

    def __init__(self, config: Optional[BatcherConfig] = None):
        self._config = config or BatcherConfig()

        # Metrics
        self._batches_emitted = 0
        self._hits_emitted = 0
        self._window_flushes = 0

    @property
    def config(self) -> BatcherConfig:
        return self._config

    @property
    def stats(self) -> dict:
        return {
            "batches": self._batches_emitted,
            "hits": self._hits_emitted,
            "window_flushes": self._window_flushes,
        }

    def _chunks(self, hits: Sequence[RankedHit]) -> List[Tuple[RankedHit, ...]]:
        size = self._config.max_batch_size
        return [tuple(hits[i : i + size]) for i in range(0, len(hits), size)]

    def batch(self, session_id: str, hits: Sequence[RankedHit]) -> List[ResultBatch]:
        """Frame one ranked result set into size-bounded batches (no timing)."""
        return [ResultBatch(session_id=session_id, hits=chunk) for chunk in self._chunks(hits)]

    def _emit(self, session_id: str, chunk: Tuple[RankedHit, ...]) -> ResultBatch:
        self._batches_emitted += 1
        self._hits_emitted += len(chunk)
        return ResultBatch(session_id=session_id, hits=chunk)

    async def stream(
        self,
        session_id: str,
        next_hits: Callable[[], Awaitable[Optional[Sequence[RankedHit]]]],
    ) -> AsyncIterator[ResultBatch]:
        """Pull result sets from next_hits() and yield batches.

        next_hits() returns None when the source is exhausted. It is only
        called when the consumer asks for more, so a slow consumer never
        causes result sets to pile up here. It must tolerate cancellation
        without losing a value (the window timer cancels a pending call).
        """
        window = self._config.max_wait_ms / 1000.0
        pending: Tuple[RankedHit, ...] = ()

        while True:
            if pending:
                try:
                    hits = await asyncio.wait_for(next_hits(), timeout=window)
                except asyncio.TimeoutError:
                    self._window_flushes += 1
                    yield self._emit(session_id, pending)
                    pending = ()
                    continue
            else:
                hits = await next_hits()

            if hits is None:
                break

            if pending:
                # A newer result set arrived: flush what is held first
                yield self._emit(session_id, pending)
                pending = ()

            for chunk in self._chunks(hits):
                if len(chunk) == self._config.max_batch_size:
                    yield self._emit(session_id, chunk)
                else:
                    pending = chunk

        if pending:
            yield self._emit(session_id, pending)
