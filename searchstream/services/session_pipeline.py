"""
Session Pipeline

Wires the search components together for one delivery channel:

    submit() -> QueryBus -> FragmentFilter -> DebounceCancelEngine
             -> QueryBuilder -> SearchGateway -> ResultBatcher -> results()

One SearchSession per session id holds everything that session owns (its
subscription, ingestion task, fragment filter and engine). Sessions never
share mutable state; the gateway and bus are shared and stateless per call.

Each delivery channel (WebSocket, SSE) gets its own pipeline so it can use its
own quiet period. Both subscribe to the same bus channel, so a fragment
published once reaches every channel the session is attached to.
"""

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import AsyncIterator, Dict, List, Optional

from searchstream.core.logging import get_logger
from searchstream.core.metrics import search_batches_sent_total, search_sessions_active, search_sessions_closed_total
from searchstream.core.search_errors import require_session_id
from searchstream.schemas.search import RankedHit
from searchstream.services.debounce_cancel_engine import DEFAULT_MAX_EMISSIONS, DebounceCancelEngine
from searchstream.services.query_builder import QueryBuilder
from searchstream.services.query_bus import QueryBus, QuerySubscription
from searchstream.services.query_normalizer import FragmentFilter, normalize
from searchstream.services.result_batcher import BatcherConfig, ResultBatch, ResultBatcher
from searchstream.services.search_gateway import SearchGateway

logger = get_logger(__name__)


@dataclass
class PipelineConfig:
    """Per-channel pipeline settings."""

    channel: str = "ws"
    quiet_period_ms: float = 300.0
    max_results: int = 20
    max_emissions: int = DEFAULT_MAX_EMISSIONS
    lookup_timeout_ms: Optional[float] = None
    batch_max_size: int = 10
    batch_window_ms: float = 10.0

    @classmethod
    def from_settings(cls, settings, channel: str) -> "PipelineConfig":
        quiet_period = settings.SEARCH_SSE_QUIET_PERIOD_MS if channel == "sse" else settings.SEARCH_WS_QUIET_PERIOD_MS
        return cls(
            channel=channel,
            quiet_period_ms=quiet_period,
            max_results=settings.SEARCH_MAX_RESULTS,
            max_emissions=settings.SEARCH_MAX_EMISSIONS,
            lookup_timeout_ms=settings.SEARCH_LOOKUP_TIMEOUT_MS,
            batch_max_size=settings.SEARCH_BATCH_MAX_SIZE,
            batch_window_ms=settings.SEARCH_BATCH_WINDOW_MS,
        )


@dataclass
class SearchSession:
    """State exclusively owned by one open session."""

    session_id: str
    engine: DebounceCancelEngine
    subscription: QuerySubscription
    fragments: FragmentFilter = field(default_factory=FragmentFilter)
    ingestion_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self.engine.closed


class SessionPipeline:
    """Per-channel registry of search sessions."""

    def __init__(
        self,
        bus: QueryBus,
        gateway: SearchGateway,
        builder: Optional[QueryBuilder] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.config = config or PipelineConfig()
        self.bus = bus
        self.gateway = gateway
        self.builder = builder or QueryBuilder(default_limit=self.config.max_results)
        self.batcher = ResultBatcher(
            BatcherConfig(
                max_batch_size=self.config.batch_max_size,
                max_wait_ms=self.config.batch_window_ms,
            )
        )
        self._sessions: Dict[str, SearchSession] = {}
        self._outboxes: Dict[str, asyncio.Queue] = {}
        self._publishers: Dict[str, asyncio.Task] = {}

    @property
    def channel(self) -> str:
        return self.config.channel

    def active_sessions(self) -> int:
        return len(self._sessions)

    def get_session(self, session_id: str) -> Optional[SearchSession]:
        return self._sessions.get(session_id)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def open(self, session_id: str) -> SearchSession:
        """Open a session; an already open session with the same id is replaced.

        Raises:
            InputError: session id is missing or blank.
        """
        require_session_id(session_id)
        if session_id in self._sessions:
            logger.info("search_session_replaced", session_id=session_id, channel=self.channel)
            await self.close(session_id, reason="replaced")

        subscription = await self.bus.subscribe(session_id)
        lookup_timeout = self.config.lookup_timeout_ms / 1000.0 if self.config.lookup_timeout_ms else None
        engine = DebounceCancelEngine(
            session_id,
            lookup=self._lookup_for(session_id),
            quiet_period=self.config.quiet_period_ms / 1000.0,
            max_emissions=self.config.max_emissions,
            lookup_timeout=lookup_timeout,
            channel=self.channel,
        )
        session = SearchSession(session_id=session_id, engine=engine, subscription=subscription)
        engine.on_exhausted = partial(self._release_exhausted, session)
        session.ingestion_task = asyncio.create_task(self._ingest(session))
        self._sessions[session_id] = session

        search_sessions_active.labels(channel=self.channel).inc()
        logger.info(
            "search_session_opened",
            session_id=session_id,
            channel=self.channel,
            quiet_period_ms=self.config.quiet_period_ms,
        )
        return session

    async def close(
        self,
        session_id: str,
        reason: str = "closed",
        session: Optional[SearchSession] = None,
    ) -> None:
        """Close a session and release everything it owns. Idempotent.

        When ``session`` is given, nothing happens unless it is still the open
        session for that id, so a replaced connection cannot close its successor.
        """
        current = self._sessions.get(session_id)
        if current is None or (session is not None and session is not current):
            return
        session = current
        del self._sessions[session_id]

        task = session.ingestion_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await session.subscription.close()
        await session.engine.close(reason=reason)

        search_sessions_active.labels(channel=self.channel).dec()
        search_sessions_closed_total.labels(channel=self.channel, reason=session.engine.close_reason or reason).inc()
        logger.info(
            "search_session_closed",
            session_id=session_id,
            channel=self.channel,
            reason=session.engine.close_reason or reason,
            settled_terms=session.engine.settled_count,
        )

    async def _release_exhausted(self, session: SearchSession) -> None:
        # Runs on the engine's lookup task once the emission cap closes it
        await self.close(session.session_id, reason="emission_cap", session=session)

    async def shutdown(self) -> None:
        """Close every open session."""
        for session_id in list(self._sessions):
            await self.close(session_id, reason="shutdown")
        if self._publishers:
            await asyncio.gather(*self._publishers.values(), return_exceptions=True)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def submit(self, session_id: str, raw: Optional[str]) -> bool:
        """Publish a raw fragment for a session without waiting.

        Returns False when the fragment normalizes to blank and is dropped.

        Raises:
            InputError: session id is missing or blank.
        """
        require_session_id(session_id)
        if not normalize(raw):
            return False
        outbox = self._outboxes.get(session_id)
        if outbox is None:
            outbox = self._outboxes[session_id] = asyncio.Queue()
        outbox.put_nowait(raw)
        publisher = self._publishers.get(session_id)
        if publisher is None or publisher.done():
            self._publishers[session_id] = asyncio.create_task(self._drain_outbox(session_id, outbox))
        return True

    async def _drain_outbox(self, session_id: str, outbox: asyncio.Queue) -> None:
        """Publish a session's fragments one at a time, in submission order."""
        try:
            while not outbox.empty():
                raw = outbox.get_nowait()
                try:
                    await self.bus.publish(session_id, raw)
                except Exception as e:
                    logger.warning(
                        "search_publish_failed",
                        session_id=session_id,
                        channel=self.channel,
                        error=str(e),
                    )
        finally:
            if outbox.empty() and self._outboxes.get(session_id) is outbox:
                del self._outboxes[session_id]
                if self._publishers.get(session_id) is asyncio.current_task():
                    del self._publishers[session_id]

    async def _ingest(self, session: SearchSession) -> None:
        try:
            async for raw in session.subscription:
                fragment = session.fragments.accept(raw)
                if fragment is None:
                    continue
                if not session.engine.offer(fragment):
                    logger.debug(
                        "fragment_rejected",
                        session_id=session.session_id,
                        channel=self.channel,
                        state=session.engine.state.value,
                    )
                    if session.engine.closed:
                        break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "search_ingestion_failed",
                session_id=session.session_id,
                channel=self.channel,
                error=str(e),
                error_type=type(e).__name__,
            )

    def _lookup_for(self, session_id: str):
        async def lookup(term: str) -> List[RankedHit]:
            request = self.builder.build(term, self.config.max_results, session_id=session_id)
            return await self.gateway.execute(request)

        return lookup

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def results(self, session_id: str) -> AsyncIterator[ResultBatch]:
        """Batched results for a session; ends when the session closes."""
        session = self._sessions.get(session_id)
        if session is None:
            session = await self.open(session_id)
        async for batch in self.stream(session):
            yield batch

    async def stream(self, session: SearchSession) -> AsyncIterator[ResultBatch]:
        """Batched results for one specific session object."""
        async for batch in self.batcher.stream(session.session_id, session.engine.next_result):
            search_batches_sent_total.labels(channel=self.channel).inc()
            yield batch
