# KimbleAI - "next fact" flow behind the D&D facts widget.
#
#   request -> maybe generate a fresh fact for the least-shown category
#           -> select_next() picks an unseen fact, preferring lagging categories
#           -> display counters + session history updated
#           -> fact + metadata returned
#
# Nothing in here is allowed to fail the request: generation problems fall
# back to the cached corpus and bad session ids start a new session.

import random
from typing import Optional

from kimble.balance import CategoryBalancer
from kimble.config import FACT_MIN_CACHE_SIZE
from kimble.facts import Category, FactStore
from kimble.generator import FactGenerator, should_generate_new_fact
from kimble.rotation import SessionStore, normalize_session_id, select_next


class FactService:

    def __init__(
        self,
        store: Optional[FactStore] = None,
        balancer: Optional[CategoryBalancer] = None,
        sessions: Optional[SessionStore] = None,
        generator: Optional[FactGenerator] = None,
        min_cache_size: int = FACT_MIN_CACHE_SIZE,
        rng=random,
    ):
        self.store = store or FactStore()
        self.balancer = balancer or CategoryBalancer()
        self.sessions = sessions or SessionStore()
        self.generator = generator
        self.min_cache_size = min_cache_size
        self.rng = rng

    def _maybe_generate(self) -> None:
        if self.generator is None:
            return
        if not should_generate_new_fact(self.store.cache_size(), self.min_cache_size, rng=self.rng):
            return
        category = self.balancer.get_least_shown_category() or Category.MISC
        if self.generator.generate_unique(self.store, category) is None:
            print(f"[Facts] No new {category.value} fact generated; serving from cache")

    def next_fact(self, raw_session_id: Optional[str]) -> tuple:
        """Returns (session_id, payload). The session id may be freshly minted."""
        session_id, is_new = normalize_session_id(raw_session_id)
        if is_new and raw_session_id:
            print("[Facts] Malformed session id, starting a new session")
        session = self.sessions.get(session_id)

        self._maybe_generate()

        corpus = self.store.corpus()
        fact = select_next(session, corpus, self.balancer, rng=self.rng)
        times_shown = self.store.record_shown(fact)
        self.sessions.put(session_id, session)

        payload = {
            "fact": fact.text,
            "metadata": {
                "category": fact.category.value,
                "edition": fact.edition,
                "difficulty": fact.difficulty.value,
                "timesShown": times_shown,
                "cacheSize": self.store.cache_size(),
                "sessionProgress": session.progress(corpus),
                "categoryDistribution": self.balancer.get_distribution(),
            },
        }
        return session_id, payload

    def reset_session(self, raw_session_id: Optional[str]) -> str:
        session_id, _ = normalize_session_id(raw_session_id)
        self.sessions.reset(session_id)
        return session_id

    def stats(self) -> dict:
        generator = None
        if self.generator is not None:
            generator = {
                "generated": self.generator.generated,
                "rejected": self.generator.rejected,
                "failures": self.generator.failures,
            }
        return {
            "cacheSize": self.store.cache_size(),
            "generatedFacts": self.store.generated_count(),
            "evictions": self.store.evictions,
            "totalShown": self.balancer.total(),
            "categoryDistribution": self.balancer.get_distribution(),
            "activeSessions": len(self.sessions),
            "generator": generator,
        }
