"""Streaming test sessions: dispatch, batching and cancellation."""

import aiohttp
import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from .executor import REQUEST_TIMEOUT_SECONDS, RequestExecutor
from .models import FinalResult, ProgressEvent, RequestOutcome, TestConfig
from .pacing import PacingScheduler
from .payloads import PayloadPool
from .stats import build_final_result, calculate_running_stats

# Outcomes buffered between the dispatcher and the batching loop
OUTCOME_QUEUE_SIZE = 100

# Minimum seconds between two progress events
BATCH_INTERVAL_SECONDS = 1.0


class ReadWriteLock:
    """Asyncio lock allowing many readers or a single writer."""

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def reader(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def writer(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class Session:
    """
    One streaming test run.

    The dispatcher task paces and sends requests, pushing outcomes onto a
    bounded queue. Iterating ``events()`` consumes that queue, batches the
    outcomes into progress events and finishes with exactly one terminal
    event: complete, cancelled or error.
    """

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    def __init__(
        self,
        test_id: str,
        config: TestConfig,
        payload_pool: PayloadPool,
        registry: "SessionRegistry",
        queue_size: int = OUTCOME_QUEUE_SIZE,
        batch_interval: float = BATCH_INTERVAL_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.test_id = test_id
        self.config = config
        self.payload_pool = payload_pool
        self.registry = registry
        self.batch_interval = batch_interval
        self.request_timeout = request_timeout

        self.cancel_event = asyncio.Event()
        self.state = self.CREATED
        self.start_time = datetime.now()
        self.final_result: Optional[FinalResult] = None

        self._queue: "asyncio.Queue[RequestOutcome]" = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self._iterated = False
        self.logger = logging.getLogger(__name__)

    @property
    def total(self) -> int:
        return self.config.total_requests

    @property
    def is_finished(self) -> bool:
        return self.state in (self.COMPLETED, self.CANCELLED, self.ERRORED)

    def cancel(self) -> None:
        """Request cooperative cancellation."""
        if not self.cancel_event.is_set():
            self.logger.info(f"Cancelling test {self.test_id}")
        self.cancel_event.set()

    def start(self) -> None:
        """Launch the dispatcher task."""
        if self._task is not None:
            raise RuntimeError(f"Session {self.test_id} already started")
        self.state = self.RUNNING
        self._task = asyncio.create_task(self._dispatch(), name=f"dispatch-{self.test_id}")

    async def _dispatch(self) -> None:
        """Send every request in order, paced, until done or cancelled."""
        scheduler = PacingScheduler(self.config, self.cancel_event)
        connector = aiohttp.TCPConnector(limit=10)

        async with aiohttp.ClientSession(connector=connector) as http:
            executor = RequestExecutor(
                self.config, self.payload_pool, http, timeout_seconds=self.request_timeout
            )
            slots = scheduler.slots()
            try:
                async for request_id in slots:
                    outcome = await executor.execute(request_id)
                    if not await self._enqueue(outcome):
                        return
            finally:
                await slots.aclose()

    async def _enqueue(self, outcome: RequestOutcome) -> bool:
        """Put an outcome on the queue unless cancelled while waiting."""
        if not self._queue.full():
            self._queue.put_nowait(outcome)
            return True

        put = asyncio.ensure_future(self._queue.put(outcome))
        cancelled = asyncio.ensure_future(self.cancel_event.wait())
        await asyncio.wait({put, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        cancelled.cancel()
        if put.done():
            return True
        put.cancel()
        return False

    async def _next_outcome(self) -> Optional[RequestOutcome]:
        """Next outcome in order, or None once the dispatcher has stopped."""
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self._task.done():
            return None

        getter = asyncio.ensure_future(self._queue.get())
        await asyncio.wait({getter, self._task}, return_when=asyncio.FIRST_COMPLETED)
        if getter.done():
            return getter.result()
        getter.cancel()
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def _event(self, type_: str, completed: int, **kwargs) -> ProgressEvent:
        percentage = (completed * 100) // self.total if self.total else 0
        return ProgressEvent(
            type=type_,
            test_id=self.test_id,
            completed=completed,
            total=self.total,
            percentage=percentage,
            **kwargs,
        )

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """
        Stream progress events until the session reaches a terminal state.

        A progress event is emitted at most once per batch interval, plus
        one for the final request. Each carries the outcomes received since
        the previous event and statistics over all outcomes so far.
        """
        if self._iterated:
            raise RuntimeError(f"Events of session {self.test_id} already consumed")
        self._iterated = True

        all_outcomes: List[RequestOutcome] = []
        batch: List[RequestOutcome] = []
        completed = 0

        try:
            yield self._event("progress", 0)
            if self._task is None:
                self.start()

            last_send = time.monotonic()

            while completed < self.total:
                outcome = await self._next_outcome()
                if outcome is None:
                    break

                completed += 1
                all_outcomes.append(outcome)
                batch.append(outcome)

                if self.cancel_event.is_set() and completed < self.total:
                    break

                is_complete = completed >= self.total
                if time.monotonic() - last_send >= self.batch_interval or is_complete:
                    yield self._event(
                        "progress",
                        completed,
                        new_requests=batch,
                        current_stats=calculate_running_stats(all_outcomes),
                    )
                    self.logger.info(
                        f"[{self.test_id}] {completed}/{self.total} requests completed"
                    )
                    batch = []
                    last_send = time.monotonic()

            if completed < self.total:
                error = self._dispatch_error()
                if error is not None:
                    self.state = self.ERRORED
                    self.logger.error(f"[{self.test_id}] Test failed: {error}")
                    yield self._event("error", completed, error=str(error))
                else:
                    self.state = self.CANCELLED
                    self.logger.info(
                        f"[{self.test_id}] Cancelled after {completed}/{self.total} requests"
                    )
                    yield self._event("cancelled", completed)
                return

            # Burst tests idle out the remaining duration before finishing
            await self._task

            self.final_result = build_final_result(self.test_id, all_outcomes, self.start_time)
            self.state = self.COMPLETED
            self.logger.info(
                f"[{self.test_id}] Completed {self.total} requests in "
                f"{self.final_result.duration:.1f}s"
            )
            yield self._event(
                "complete",
                self.total,
                final_result=self.final_result,
            )
        finally:
            await self.close()

    async def close(self) -> None:
        """Cancel an unfinished session and drop it from the registry."""
        if not self.is_finished:
            # Consumer went away before a terminal event
            self.cancel()
        await self.registry.unregister(self.test_id)

    def _dispatch_error(self) -> Optional[BaseException]:
        if self._task is None or not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()


class SessionRegistry:
    """Process-wide map of live sessions keyed by test id."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = ReadWriteLock()

    async def register(self, session: Session) -> None:
        async with self._lock.writer():
            if session.test_id in self._sessions:
                raise ValueError(f"Session {session.test_id} already registered")
            self._sessions[session.test_id] = session

    async def unregister(self, test_id: str) -> None:
        async with self._lock.writer():
            self._sessions.pop(test_id, None)

    async def get(self, test_id: str) -> Optional[Session]:
        async with self._lock.reader():
            return self._sessions.get(test_id)

    async def active_ids(self) -> List[str]:
        async with self._lock.reader():
            return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)


def generate_test_id() -> str:
    return f"test_{int(time.time())}_{uuid.uuid4().hex[:8]}"


class SessionCoordinator:
    """
    Starts, tracks and cancels streaming test sessions.

    Owns the payload pool shared by all sessions and the registry used to
    find a running session by id.
    """

    def __init__(
        self,
        payload_pool: Optional[PayloadPool] = None,
        registry: Optional[SessionRegistry] = None,
        queue_size: int = OUTCOME_QUEUE_SIZE,
        batch_interval: float = BATCH_INTERVAL_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.payload_pool = payload_pool or PayloadPool()
        self.registry = registry or SessionRegistry()
        self.queue_size = queue_size
        self.batch_interval = batch_interval
        self.request_timeout = request_timeout
        self.logger = logging.getLogger(__name__)

    async def start_streaming_session(self, config: TestConfig) -> Session:
        """
        Validate a config, register a new session and start dispatching.

        Raises:
            ConfigError: If the configuration is rejected
        """
        config.validate()
        config = config.with_defaults()

        session = Session(
            generate_test_id(),
            config,
            self.payload_pool,
            self.registry,
            queue_size=self.queue_size,
            batch_interval=self.batch_interval,
            request_timeout=self.request_timeout,
        )
        await self.registry.register(session)
        session.start()

        self.logger.info(
            f"Started test {session.test_id}: {config.total_requests} {config.http_method} "
            f"requests to {config.target_url} over {config.duration}s "
            f"({config.traffic_type}/{config.test_mode})"
        )
        return session

    async def cancel_session(self, test_id: str) -> bool:
        """Cancel a running session. Returns False if it is not registered."""
        session = await self.registry.get(test_id)
        if session is None:
            return False
        session.cancel()
        return True

    async def run_test(self, config: TestConfig) -> Optional[FinalResult]:
        """Run a test to its end and return the final result (None if cancelled)."""
        session = await self.start_streaming_session(config)
        async for event in session.events():
            if event.type == "error":
                raise RuntimeError(event.error)
        return session.final_result
