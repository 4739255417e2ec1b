"""
Debounce / Cancel Engine

Turns one session's stream of keystroke fragments into settled search terms
and delivers the results of the most recent settled term only.

State machine (one engine per session, driven from a single event loop):

    IDLE --offer--> TIMING --quiet period elapses--> SETTLED (lookup in flight)
    TIMING/SETTLED --offer--> TIMING   (pending term dropped, lookup cancelled)
    any --close--> CLOSED              (terminal)

Rules:
- Every offered fragment re-arms the quiet-period timer; the previous pending
  fragment is discarded and never looked up.
- A fragment that survives a full quiet period settles exactly once and
  starts one lookup. At most one lookup is in flight per session.
- A new fragment cancels the in-flight lookup. Each lookup carries the
  generation it was started for; a result whose generation is no longer
  current is discarded even if cancellation came too late.
- Lookup failures and timeouts count as an empty result; the engine keeps
  running.
- Output is latest-wins: only the most recent completed result set is held
  until the consumer asks for it.
- After ``max_emissions`` settled terms the engine stops accepting fragments,
  delivers the last lookup and closes with reason ``emission_cap``.

Usage:
    engine = DebounceCancelEngine("u1", lookup, quiet_period=0.3)
    engine.offer("sam")
    hits = await engine.next_result()   # None once closed and drained
    await engine.close()
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence

from searchstream.core.logging import get_logger
from searchstream.core.metrics import (
    search_fragments_total,
    search_lookups_total,
    search_settled_terms_total,
)
from searchstream.schemas.search import RankedHit

logger = get_logger(__name__)

Lookup = Callable[[str], Awaitable[Sequence[RankedHit]]]

DEFAULT_MAX_EMISSIONS = 2000


class EngineState(str, Enum):
    """Per-session engine states."""

    IDLE = "idle"
    TIMING = "timing"
    SETTLED = "settled"
    CLOSED = "closed"


@dataclass
class SessionState:
    """Mutable per-session state, owned by exactly one engine."""

    session_id: str
    state: EngineState = EngineState.IDLE
    generation: int = 0
    pending_term: Optional[str] = None
    settled_term: Optional[str] = None
    settled_count: int = 0
    last_fragment_at: Optional[float] = None
    timer_task: Optional[asyncio.Task] = None
    lookup_task: Optional[asyncio.Task] = None
    close_reason: Optional[str] = None


class LatestResultSlot:
    """Single-value mailbox: a new value overwrites any unconsumed one."""

    def __init__(self):
        self._value: Optional[List[RankedHit]] = None
        self._has_value = False
        self._closed = False
        self._event = asyncio.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_value(self) -> bool:
        return self._has_value

    def put(self, value: List[RankedHit]) -> None:
        if self._closed:
            return
        if self._has_value:
            self.dropped += 1
        self._value = value
        self._has_value = True
        self._event.set()

    def close(self) -> None:
        self._closed = True
        self._event.set()

    async def get(self) -> Optional[List[RankedHit]]:
        """Wait for the next value; None once closed and empty.

        Cancelling a waiting get() never loses a value.
        """
        while not self._has_value:
            if self._closed:
                return None
            self._event.clear()
            await self._event.wait()
        value = self._value
        self._value = None
        self._has_value = False
        return value


class DebounceCancelEngine:
    """Quiet-period debounce with cancel-on-new-input for one session."""

    def __init__(
        self,
        session_id: str,
        lookup: Lookup,
        quiet_period: float,
        max_emissions: int = DEFAULT_MAX_EMISSIONS,
        lookup_timeout: Optional[float] = None,
        channel: str = "default",
    ):
        if quiet_period < 0:
            raise ValueError("quiet_period must be >= 0")
        if max_emissions <= 0:
            raise ValueError("max_emissions must be > 0")
        self._lookup = lookup
        self.quiet_period = quiet_period
        self.max_emissions = max_emissions
        self.lookup_timeout = lookup_timeout
        self.channel = channel
        self._session = SessionState(session_id=session_id)
        self._slot = LatestResultSlot()
        # Awaited after the engine closes itself at the emission cap
        self.on_exhausted: Optional[Callable[[], Awaitable[None]]] = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def state(self) -> EngineState:
        return self._session.state

    @property
    def closed(self) -> bool:
        return self._session.state is EngineState.CLOSED

    @property
    def exhausted(self) -> bool:
        return self._session.settled_count >= self.max_emissions

    @property
    def settled_count(self) -> int:
        return self._session.settled_count

    @property
    def in_flight(self) -> bool:
        task = self._session.lookup_task
        return task is not None and not task.done()

    @property
    def close_reason(self) -> Optional[str]:
        return self._session.close_reason

    @property
    def dropped_results(self) -> int:
        return self._slot.dropped

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def offer(self, term: str) -> bool:
        """Feed a normalized, non-empty fragment. Never blocks.

        Returns False when the engine no longer accepts input.
        """
        s = self._session
        if s.state is EngineState.CLOSED or self.exhausted:
            return False

        self._cancel_timer()
        if self.in_flight:
            s.lookup_task.cancel()
            search_lookups_total.labels(channel=self.channel, outcome="cancelled").inc()
            logger.debug("lookup_superseded", session_id=s.session_id, term=s.settled_term)

        s.generation += 1
        s.pending_term = term
        s.last_fragment_at = time.monotonic()
        s.state = EngineState.TIMING
        s.timer_task = asyncio.create_task(self._settle_after_quiet_period(s.generation, term))
        search_fragments_total.labels(channel=self.channel).inc()
        return True

    async def _settle_after_quiet_period(self, generation: int, term: str) -> None:
        await asyncio.sleep(self.quiet_period)
        s = self._session
        if generation != s.generation or s.state is not EngineState.TIMING:
            return

        s.timer_task = None
        s.pending_term = None
        s.settled_term = term
        s.settled_count += 1
        s.state = EngineState.SETTLED
        search_settled_terms_total.labels(channel=self.channel).inc()
        logger.debug(
            "term_settled",
            session_id=s.session_id,
            term=term,
            settled_count=s.settled_count,
        )
        s.lookup_task = asyncio.create_task(self._run_lookup(generation, term))

    async def _run_lookup(self, generation: int, term: str) -> None:
        s = self._session
        hits: List[RankedHit]
        try:
            if self.lookup_timeout:
                result = await asyncio.wait_for(self._lookup(term), timeout=self.lookup_timeout)
            else:
                result = await self._lookup(term)
            hits = list(result)
            outcome = "ok"
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("lookup_timeout", session_id=s.session_id, term=term, timeout=self.lookup_timeout)
            hits = []
            outcome = "timeout"
        except Exception as e:
            logger.warning(
                "lookup_failed",
                session_id=s.session_id,
                term=term,
                error=str(e),
                error_type=type(e).__name__,
            )
            hits = []
            outcome = "error"

        if generation != s.generation or s.state is EngineState.CLOSED:
            search_lookups_total.labels(channel=self.channel, outcome="stale").inc()
            logger.debug("lookup_result_discarded", session_id=s.session_id, term=term)
            return

        search_lookups_total.labels(channel=self.channel, outcome=outcome).inc()
        s.lookup_task = None
        s.state = EngineState.IDLE
        self._slot.put(hits)

        if self.exhausted:
            logger.info(
                "session_emission_cap_reached",
                session_id=s.session_id,
                max_emissions=self.max_emissions,
            )
            await self.close(reason="emission_cap")
            if self.on_exhausted is not None:
                await self.on_exhausted()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def next_result(self) -> Optional[List[RankedHit]]:
        """Latest completed result set; None once the engine is closed and drained."""
        return await self._slot.get()

    async def results(self) -> AsyncIterator[List[RankedHit]]:
        while True:
            hits = await self.next_result()
            if hits is None:
                return
            yield hits

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self, reason: str = "closed") -> None:
        """Enter CLOSED: cancel timer and lookup, end the result stream. Idempotent."""
        s = self._session
        if s.state is EngineState.CLOSED:
            return
        s.state = EngineState.CLOSED
        s.close_reason = reason
        s.pending_term = None

        tasks = [t for t in (s.timer_task, s.lookup_task) if t is not None and not t.done()]
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        s.timer_task = None
        s.lookup_task = None
        self._slot.close()
        logger.debug("engine_closed", session_id=s.session_id, reason=reason, settled_count=s.settled_count)

    def _cancel_timer(self) -> None:
        task = self._session.timer_task
        if task is not None and not task.done():
            task.cancel()
        self._session.timer_task = None
