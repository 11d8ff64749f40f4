from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Protocol, Tuple, get_args

import anyio

from .config import CONFIG, SessionConfig
from .schemas import (
    CanonicalIdentity,
    LogLevel,
    SessionLogEntry,
    SessionStats,
    VerificationResult,
    VerificationSession,
)

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]

IDLE_MESSAGE = "IDLE: Waiting for handheld connection..."
CONNECTED_MESSAGE = "HANDSHAKE: Handheld scanner connected"
TIMED_OUT_MESSAGE = "DISCONNECT: Handheld scanner timed out"
LOG_LEVELS = set(get_args(LogLevel))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LookupStatus(str, enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class PosFinalizer(Protocol):
    def finalize(self, transaction_id: str, identity: Optional[CanonicalIdentity], session: VerificationSession) -> None:
        ...


class ComplianceRecorder(Protocol):
    def record(self, transaction_id: str, identity: Optional[CanonicalIdentity], session: VerificationSession) -> None:
        ...


class SessionStore:
    """In-process store of verification sessions keyed by transaction id.

    Every method is synchronous. Reads hand back copies, so callers never share
    state with the store between calls. Expired sessions are evicted lazily on
    every per-session call and in bulk by ``sweep_expired``.
    """

    def __init__(self, config: Optional[SessionConfig] = None, clock: Optional[Clock] = None) -> None:
        self.config = config or CONFIG.sessions
        self._clock = clock or utc_now
        self._sessions: Dict[str, VerificationSession] = {}

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.config.ttl_minutes)

    @property
    def liveness_window(self) -> timedelta:
        return timedelta(seconds=self.config.liveness_seconds)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._sessions

    def _is_expired(self, session: VerificationSession, now: datetime) -> bool:
        return session.expires_at < now

    def _append_log(self, session: VerificationSession, message: str, level: str, now: datetime) -> None:
        if level not in LOG_LEVELS:
            level = "info"
        session.logs.append(SessionLogEntry(timestamp=now, level=level, message=message))
        overflow = len(session.logs) - self.config.log_cap
        if overflow > 0:
            del session.logs[:overflow]

    def _evict_expired(self, transaction_id: str, session: VerificationSession, now: datetime) -> None:
        self._sessions.pop(transaction_id, None)
        LOGGER.info(
            "verification_expired transaction_id=%s status=%s age_seconds=%d",
            transaction_id,
            session.status,
            round((now - session.created_at).total_seconds()),
        )

    def _live(self, transaction_id: str, now: datetime) -> Tuple[Optional[VerificationSession], LookupStatus]:
        session = self._sessions.get(transaction_id)
        if session is None:
            return None, LookupStatus.NOT_FOUND
        if self._is_expired(session, now):
            self._evict_expired(transaction_id, session, now)
            return None, LookupStatus.EXPIRED
        return session, LookupStatus.FOUND

    def create(self, transaction_id: str, *, register_id: Optional[str] = None) -> VerificationSession:
        now = self._clock()
        session = VerificationSession(
            transaction_id=transaction_id,
            register_id=register_id,
            created_at=now,
            updated_at=now,
            expires_at=now + self.ttl,
        )
        self._append_log(session, IDLE_MESSAGE, "info", now)
        if transaction_id in self._sessions:
            LOGGER.info("verification_replaced transaction_id=%s", transaction_id)
        self._sessions[transaction_id] = session
        LOGGER.info(
            "verification_created transaction_id=%s register_id=%s expires_at=%s",
            transaction_id,
            register_id,
            session.expires_at.isoformat(),
        )
        return session.model_copy(deep=True)

    def heartbeat(self, transaction_id: str) -> Optional[VerificationSession]:
        now = self._clock()
        session, _ = self._live(transaction_id, now)
        if session is None:
            return None
        if not session.remote_scanner_active:
            self._append_log(session, CONNECTED_MESSAGE, "success", now)
        session.remote_scanner_active = True
        session.last_heartbeat = now
        session.updated_at = now
        return session.model_copy(deep=True)

    def add_log(self, transaction_id: str, message: str, level: str = "info") -> bool:
        now = self._clock()
        session, _ = self._live(transaction_id, now)
        if session is None:
            return False
        self._append_log(session, message, level, now)
        return True

    def update(
        self,
        transaction_id: str,
        *,
        approved: bool,
        customer_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        age: Optional[int] = None,
        reason: Optional[str] = None,
        register_id: Optional[str] = None,
    ) -> Optional[VerificationSession]:
        now = self._clock()
        session, status = self._live(transaction_id, now)
        if session is None:
            if status is LookupStatus.NOT_FOUND:
                LOGGER.warning("verification_not_found transaction_id=%s action=update", transaction_id)
            return None

        # A later result replaces an earlier one; pending is never re-entered.
        session.status = "approved" if approved else "rejected"
        session.result = VerificationResult(
            customer_id=customer_id,
            customer_name=customer_name,
            age=age,
            reason=reason,
        )
        session.register_id = register_id or session.register_id
        session.updated_at = now
        self._append_log(
            session,
            f"RESULT: Scan {'Approved' if approved else 'Rejected'} ({reason or 'OK'})",
            "success" if approved else "error",
            now,
        )
        LOGGER.info(
            "verification_updated transaction_id=%s status=%s customer_id=%s age=%s",
            transaction_id,
            session.status,
            customer_id,
            age,
        )
        return session.model_copy(deep=True)

    def lookup(self, transaction_id: str) -> Tuple[Optional[VerificationSession], LookupStatus]:
        """Fetch a session and refresh its scanner liveness flag.

        Liveness is only re-evaluated here, so staleness is noticed when somebody
        polls. A heartbeat exactly ``liveness_window`` old still counts as live.
        """
        now = self._clock()
        session, status = self._live(transaction_id, now)
        if session is None:
            return None, status

        if session.remote_scanner_active and session.last_heartbeat is not None:
            if now - session.last_heartbeat > self.liveness_window:
                session.remote_scanner_active = False
                self._append_log(session, TIMED_OUT_MESSAGE, "error", now)
                LOGGER.info("scanner_timed_out transaction_id=%s", transaction_id)
        return session.model_copy(deep=True), status

    def get(self, transaction_id: str) -> Optional[VerificationSession]:
        session, _ = self.lookup(transaction_id)
        return session

    def complete(self, transaction_id: str) -> bool:
        session = self._sessions.pop(transaction_id, None)
        if session is None:
            return False
        LOGGER.info("verification_completed transaction_id=%s status=%s", transaction_id, session.status)
        return True

    def stats(self) -> SessionStats:
        now = self._clock()
        stats = SessionStats(total=len(self._sessions))
        for session in self._sessions.values():
            if self._is_expired(session, now):
                stats.expired += 1
                continue
            setattr(stats, session.status, getattr(stats, session.status) + 1)
            if session.remote_scanner_active:
                stats.active_remote_scanners += 1
        return stats

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [tid for tid, session in self._sessions.items() if self._is_expired(session, now)]
        for transaction_id in expired:
            self._evict_expired(transaction_id, self._sessions[transaction_id], now)
        if expired:
            LOGGER.info(
                "verification_cleanup expired=%d remaining=%d",
                len(expired),
                len(self._sessions),
            )
        return len(expired)


async def run_sweeper(store: SessionStore, interval_seconds: Optional[float] = None) -> None:
    """Evict expired sessions forever; cancel the surrounding task group to stop."""
    interval = interval_seconds if interval_seconds is not None else store.config.sweep_interval_seconds
    LOGGER.info("Session sweeper started (interval=%ss)", interval)
    while True:
        await anyio.sleep(interval)
        store.sweep_expired()
