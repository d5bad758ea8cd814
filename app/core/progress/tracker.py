"""
Session time tracker.

Runs next to the content viewer, emits one sequenced heartbeat per engaged
second and ships them to the progress ledger in batches. Suspended viewers
do not tick, so hidden-tab time is never credited.
"""
import asyncio
import contextlib
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import httpx

from app.core.config import settings as default_settings, Settings
from app.core.exceptions import (
    AppError,
    CompletionNotAcknowledged,
    ConcurrencyConflict,
    PermissionDeniedError,
    TransientIOError,
    ValidationError,
)
from app.core.progress.locks import StudentLockRegistry, student_locks
from app.schemas.progress import (
    Heartbeat,
    HeartbeatAck,
    HeartbeatBatch,
    ProgressUpdateResponse,
    SessionComplete,
)

logger = logging.getLogger(__name__)

MAX_COMPLETION_BACKOFF_SECONDS = 30.0


class LedgerClient(Protocol):
    """Transport used by the tracker to reach the progress ledger."""

    async def send_heartbeats(self, batch: HeartbeatBatch) -> HeartbeatAck:
        ...

    async def complete(self, session_id: str, student_id: int, part_id: int) -> ProgressUpdateResponse:
        ...


class LocalLedgerClient:
    """In-process client: runs ledger writes in a worker thread with its own DB session."""

    def __init__(self, session_factory: Callable[[], Any], locks: Optional[StudentLockRegistry] = None):
        self.session_factory = session_factory
        self.locks = locks or student_locks

    def _run(self, operation: Callable[[Any], Any]) -> Any:
        from app.core.progress.ledger import ProgressLedger

        db = self.session_factory()
        try:
            return operation(ProgressLedger(db, locks=self.locks))
        finally:
            db.close()

    async def send_heartbeats(self, batch: HeartbeatBatch) -> HeartbeatAck:
        return await asyncio.to_thread(self._run, lambda ledger: ledger.record_heartbeats(batch))

    async def complete(self, session_id: str, student_id: int, part_id: int) -> ProgressUpdateResponse:
        return await asyncio.to_thread(
            self._run, lambda ledger: ledger.complete_from_session(session_id, student_id, part_id)
        )


class HttpLedgerClient:
    """REST client for the progress endpoints."""

    ERRORS_BY_STATUS = {
        400: ValidationError,
        403: PermissionDeniedError,
        409: ConcurrencyConflict,
    }

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 5.0,
        api_prefix: str = default_settings.API_V1_PREFIX,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.api_prefix = api_prefix
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(f"{self.api_prefix}{path}", json=payload)
        except httpx.TransportError as e:
            raise TransientIOError(f"Ledger request failed: {e}")

        if response.status_code >= 500:
            raise TransientIOError(f"Ledger returned {response.status_code}")
        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            error_cls = self.ERRORS_BY_STATUS.get(response.status_code)
            if error_cls is not None:
                raise error_cls(message)
            raise AppError(message, response.status_code)
        return response.json()

    async def send_heartbeats(self, batch: HeartbeatBatch) -> HeartbeatAck:
        data = await self._post("/progress/heartbeats", batch.model_dump())
        return HeartbeatAck(**data)

    async def complete(self, session_id: str, student_id: int, part_id: int) -> ProgressUpdateResponse:
        body = SessionComplete(student_id=student_id, part_id=part_id)
        data = await self._post(f"/progress/sessions/{session_id}/complete", body.model_dump())
        return ProgressUpdateResponse(**data)


class SessionTimeTracker:
    """
    Engagement timer for one viewing session of one part.

    Heartbeats carry strictly increasing sequence numbers; the ledger credits a
    sequence at most once, so resending a batch after a lost ack is safe.
    Acknowledged sequences are dropped from the buffer and never resent.
    """

    def __init__(
        self,
        client: LedgerClient,
        student_id: int,
        part_id: int,
        session_id: Optional[str] = None,
        settings: Settings = default_settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.student_id = student_id
        self.part_id = part_id
        self.session_id = session_id or str(uuid.uuid4())
        self.settings = settings
        self.sleep = sleep

        self.degraded = False
        self.completed = False
        self._sequence = 0
        self._acked_sequence = 0
        self._buffer: List[Heartbeat] = []
        self._suspended = False
        self._stopped = False
        self._task: Optional[asyncio.Task] = None
        self._flush_lock = asyncio.Lock()
        self._completion: Optional[ProgressUpdateResponse] = None

    @property
    def pending(self) -> List[Heartbeat]:
        return list(self._buffer)

    @property
    def acked_sequence(self) -> int:
        return self._acked_sequence

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ============= Lifecycle =============

    def start(self) -> None:
        """Start ticking once per HEARTBEAT_INTERVAL_SECONDS."""
        if self._stopped:
            raise ValidationError("Tracker already stopped")
        self._suspended = False
        if not self.is_running:
            self._task = asyncio.create_task(self._run())

    async def suspend(self) -> None:
        """Viewer hidden: flush what we have and stop ticking."""
        self._suspended = True
        await self._cancel_loop()
        await self.flush()

    def resume(self) -> None:
        """Viewer visible again: continue with the next sequence number."""
        self.start()

    async def stop(self) -> None:
        """Final flush and teardown."""
        self._suspended = True
        self._stopped = True
        await self._cancel_loop()
        await self.flush()

    async def _cancel_loop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        if task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while not self._suspended:
            await self.sleep(self.settings.HEARTBEAT_INTERVAL_SECONDS)
            if self._suspended:
                break
            try:
                await self.tick()
            except AppError as e:
                logger.error(f"Session {self.session_id}: ledger rejected heartbeats ({e.message}); stopping")
                self._suspended = True

    # ============= Heartbeats =============

    async def tick(self) -> Optional[Heartbeat]:
        """Record one engaged second; flushes every HEARTBEAT_FLUSH_EVERY heartbeats."""
        if self._suspended or self._stopped:
            return None
        self._sequence += 1
        heartbeat = Heartbeat(sequence=self._sequence, increment_seconds=1)
        self._buffer.append(heartbeat)
        if len(self._buffer) >= self.settings.HEARTBEAT_FLUSH_EVERY:
            await self.flush()
        return heartbeat

    async def flush(self) -> Optional[HeartbeatAck]:
        """
        Send buffered heartbeats with bounded retry and exponential backoff.

        Transient failures and write conflicts are retried; resending is safe
        because the ledger skips credited sequences. On sustained failure the
        buffer is kept (degraded mode) and goes out with the next flush.
        Rejections (validation, permission) propagate.

        Returns:
            The ledger's ack, or None if nothing was sent or delivery failed
        """
        async with self._flush_lock:
            if not self._buffer:
                return None

            batch = HeartbeatBatch(
                session_id=self.session_id,
                student_id=self.student_id,
                part_id=self.part_id,
                heartbeats=list(self._buffer),
            )
            retries = self.settings.HEARTBEAT_MAX_RETRIES
            for attempt in range(retries + 1):
                try:
                    ack = await self.client.send_heartbeats(batch)
                except (TransientIOError, ConcurrencyConflict) as e:
                    if attempt == retries:
                        if not self.degraded:
                            logger.warning(
                                f"Session {self.session_id}: heartbeat flush failed ({e.message}); "
                                f"keeping {len(self._buffer)} heartbeats locally"
                            )
                        self.degraded = True
                        return None
                    await self.sleep(self.settings.HEARTBEAT_BACKOFF_SECONDS * (2 ** attempt))
                    continue

                self._acked_sequence = max(self._acked_sequence, ack.last_sequence)
                self._buffer = [hb for hb in self._buffer if hb.sequence > self._acked_sequence]
                if self.degraded:
                    logger.info(f"Session {self.session_id}: heartbeat delivery recovered")
                self.degraded = False
                return ack
        return None

    # ============= Completion =============

    async def signal_content_end(self) -> ProgressUpdateResponse:
        """
        Content reached its natural end: flush, then send completion exactly once.

        Raises:
            CompletionNotAcknowledged: Retry budget exhausted without an ack
        """
        if self._completion is not None:
            return self._completion

        await self.flush()

        retries = self.settings.COMPLETION_MAX_RETRIES
        for attempt in range(retries + 1):
            try:
                response = await self.client.complete(self.session_id, self.student_id, self.part_id)
            except (TransientIOError, ConcurrencyConflict) as e:
                if attempt == retries:
                    logger.error(f"Session {self.session_id}: completion not acknowledged ({e.message})")
                    raise CompletionNotAcknowledged(self.session_id)
                delay = min(
                    self.settings.HEARTBEAT_BACKOFF_SECONDS * (2 ** attempt),
                    MAX_COMPLETION_BACKOFF_SECONDS,
                )
                await self.sleep(delay)
                continue

            self._completion = response
            self.completed = True
            logger.info(f"Session {self.session_id}: completion acknowledged for part {self.part_id}")
            return response

        raise CompletionNotAcknowledged(self.session_id)
