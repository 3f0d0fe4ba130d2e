# KimbleAI - per-session fact rotation.
# A session never sees the same fact twice until it has seen the whole corpus,
# then the rotation starts over.

import random
import re
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from kimble.balance import CategoryBalancer
from kimble.config import SESSION_STORE_MAX, SESSION_TTL_HOURS
from kimble.facts import Fact

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{8,128}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


@dataclass
class SessionHistory:
    shown_fact_texts: set = field(default_factory=set)
    started_at: datetime = field(default_factory=_utcnow)

    def is_expired(self, now: Optional[datetime] = None, ttl_hours: int = SESSION_TTL_HOURS) -> bool:
        now = now or _utcnow()
        return now - self.started_at >= timedelta(hours=ttl_hours)

    def reset(self, now: Optional[datetime] = None) -> None:
        self.shown_fact_texts.clear()
        self.started_at = now or _utcnow()

    def shown_in(self, corpus: list) -> int:
        """How many facts of `corpus` this session has already seen."""
        return sum(1 for text in {f.text for f in corpus} if text in self.shown_fact_texts)

    def state(self, corpus: list) -> SessionState:
        total = len({f.text for f in corpus})
        if total and self.shown_in(corpus) >= total:
            return SessionState.EXHAUSTED
        return SessionState.ACTIVE

    def progress(self, corpus: list) -> str:
        return f"{self.shown_in(corpus)}/{len({f.text for f in corpus})}"


def select_next(
    session: SessionHistory,
    corpus: list,
    balancer: CategoryBalancer,
    rng=random,
    now: Optional[datetime] = None,
) -> Fact:
    """
    Pick the next fact for `session`.

    Unseen facts in the balancer's least-shown category win; when that
    category has nothing unseen, the least-shown category that does is used.
    An exhausted session is reset and the full corpus becomes eligible again.
    The corpus itself is never modified.
    """
    if not corpus:
        raise ValueError("cannot select from an empty fact corpus")

    if session.is_expired(now):
        session.reset(now)

    candidates = [f for f in corpus if f.text not in session.shown_fact_texts]
    if not candidates:
        # EXHAUSTED -> ACTIVE
        session.shown_fact_texts.clear()
        candidates = list(corpus)

    present = {f.category for f in candidates}
    target = balancer.get_least_shown_category()
    if target not in present:
        target = balancer.get_least_shown_category(among=present)

    pool = [f for f in candidates if f.category == target] or candidates
    chosen = rng.choice(pool)

    session.shown_fact_texts.add(chosen.text)
    balancer.track_fact(chosen.category)
    return chosen


# ─────────────────────────────────────────
# SESSION STORE
# ─────────────────────────────────────────

def new_session_id() -> str:
    return uuid.uuid4().hex


def normalize_session_id(raw: Optional[str]) -> tuple:
    """
    Returns (session_id, is_new). Missing or malformed ids are replaced with a
    fresh one instead of being treated as an error.
    """
    if raw:
        raw = raw.strip()
        if _SESSION_ID_RE.match(raw):
            return raw, False
    return new_session_id(), True


class SessionStore:
    """
    Server-side session histories keyed by the client's session id.
    Expiry is checked on read. Oldest sessions are evicted once `max_size` is hit.
    """

    def __init__(self, max_size: int = SESSION_STORE_MAX, ttl_hours: int = SESSION_TTL_HOURS):
        self.max_size = max_size
        self.ttl_hours = ttl_hours
        self._sessions: OrderedDict = OrderedDict()

    def get(self, session_id: str, now: Optional[datetime] = None) -> SessionHistory:
        history = self._sessions.get(session_id)
        if history is None or history.is_expired(now, self.ttl_hours):
            return SessionHistory(started_at=now or _utcnow())
        return history

    def put(self, session_id: str, history: SessionHistory) -> None:
        if session_id in self._sessions:
            self._sessions.move_to_end(session_id)
        self._sessions[session_id] = history
        while len(self._sessions) > self.max_size:
            self._sessions.popitem(last=False)

    def reset(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
