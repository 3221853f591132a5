# /flowdesk/services/session_service.py

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from flowdesk.models.flow import FlowSession, Screen
from flowdesk.utils.metrics import active_sessions_gauge

# This service keeps the in-memory state of active WhatsApp flows, keyed by the
# user's identity (phone number). Sessions use a sliding expiry and are swept
# periodically by a background job. Nothing here survives a restart; callers
# treat a missing session as "start over".

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FlowSessionStore:
    SWEEP_JOB_ID = "flow_session_sweep"

    def __init__(
        self,
        ttl: timedelta = timedelta(minutes=15),
        sweep_interval: timedelta = timedelta(minutes=5),
        clock: Clock = _utc_now,
    ):
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: Dict[str, FlowSession] = {}
        self._lock = threading.RLock()
        self._scheduler: Optional[BackgroundScheduler] = None

    # --- Lifecycle ---

    def start(self):
        """Starts the periodic sweep. Calling it twice is a no-op."""
        with self._lock:
            if self._scheduler is not None:
                return
            scheduler = BackgroundScheduler(timezone="UTC")
            scheduler.add_job(
                self.sweep,
                "interval",
                seconds=self.sweep_interval.total_seconds(),
                id=self.SWEEP_JOB_ID,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
            scheduler.start()
            self._scheduler = scheduler
        logger.info(f"Session sweep scheduled every {self.sweep_interval}.")

    def stop(self):
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Session sweep stopped.")

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def sweep(self) -> int:
        """Evicts every expired session. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, session in self._sessions.items() if session.expires_at <= now]
            for key in expired:
                del self._sessions[key]
            remaining = len(self._sessions)

        active_sessions_gauge.set(remaining)
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired session(s).")
        return len(expired)

    # --- Core operations ---

    def _touch(self, session: FlowSession, now: datetime):
        session.last_accessed_at = now
        session.expires_at = now + self.ttl

    def _live(self, identity: str, now: datetime) -> Optional[FlowSession]:
        session = self._sessions.get(identity)
        if session is None:
            return None
        if session.expires_at <= now:
            del self._sessions[identity]
            return None
        return session

    def save(self, identity: str, screen: Screen, context: Optional[Dict[str, Any]] = None) -> FlowSession:
        """Creates or replaces the session for `identity`, keeping its original creation time."""
        with self._lock:
            now = self._clock()
            existing = self._live(identity, now)
            session = FlowSession(
                identity=identity,
                screen=screen,
                context=dict(context or {}),
                created_at=existing.created_at if existing else now,
                last_accessed_at=now,
                expires_at=now + self.ttl,
            )
            self._sessions[identity] = session
            return session.model_copy(deep=True)

    def get(self, identity: str) -> Optional[FlowSession]:
        with self._lock:
            now = self._clock()
            session = self._live(identity, now)
            if session is None:
                return None
            self._touch(session, now)
            return session.model_copy(deep=True)

    def merge_context(self, identity: str, updates: Dict[str, Any]) -> Optional[FlowSession]:
        """Shallow merge: keys in `updates` overwrite, everything else is kept."""
        with self._lock:
            now = self._clock()
            session = self._live(identity, now)
            if session is None:
                return None
            session.context = {**session.context, **updates}
            self._touch(session, now)
            return session.model_copy(deep=True)

    def set_screen(self, identity: str, screen: Screen) -> Optional[FlowSession]:
        with self._lock:
            now = self._clock()
            session = self._live(identity, now)
            if session is None:
                return None
            session.screen = screen
            self._touch(session, now)
            return session.model_copy(deep=True)

    def delete(self, identity: str) -> bool:
        with self._lock:
            return self._sessions.pop(identity, None) is not None

    def clear(self):
        with self._lock:
            self._sessions.clear()

    # --- Monitoring ---

    def active_sessions(self) -> List[FlowSession]:
        with self._lock:
            now = self._clock()
            return [s.model_copy(deep=True) for s in self._sessions.values() if s.expires_at > now]

    def count(self) -> int:
        return len(self.active_sessions())

    def has_valid_session(self, identity: str) -> bool:
        return self.get(identity) is not None

    def session_age(self, identity: str) -> Optional[timedelta]:
        session = self.get(identity)
        if session is None:
            return None
        return self._clock() - session.created_at

    def time_until_expiration(self, identity: str) -> Optional[timedelta]:
        with self._lock:
            now = self._clock()
            session = self._live(identity, now)
            if session is None:
                return None
            return max(session.expires_at - now, timedelta(0))
