"""
Tests for the "next fact" flow: sessions, metadata and opportunistic generation.
"""

import random
from unittest.mock import MagicMock

import pytest

from conftest import make_claude_response
from kimble.facts import Category
from kimble.facts_service import FactService
from kimble.generator import FactGenerator

PSIONICS = "Psionics debuted in the Eldritch Wizardry supplement published by TSR back in 1976."


@pytest.fixture
def service(rng):
    return FactService(rng=rng)


class TestNextFact:

    def test_new_session_gets_id_and_payload(self, service):
        session_id, payload = service.next_fact(None)
        assert len(session_id) == 32
        meta = payload["metadata"]
        assert payload["fact"]
        assert meta["category"] in {c.value for c in Category}
        assert meta["timesShown"] == 1
        assert meta["cacheSize"] == 30
        assert meta["sessionProgress"] == "1/30"
        assert sum(meta["categoryDistribution"].values()) == pytest.approx(100.0)

    def test_same_session_never_repeats(self, service):
        session_id, first = service.next_fact(None)
        seen = {first["fact"]}
        for i in range(2, 31):
            returned_id, payload = service.next_fact(session_id)
            assert returned_id == session_id
            assert payload["fact"] not in seen
            assert payload["metadata"]["sessionProgress"] == f"{i}/30"
            seen.add(payload["fact"])

    def test_rotation_restarts_after_exhaustion(self, service):
        session_id, _ = service.next_fact(None)
        for _ in range(29):
            service.next_fact(session_id)
        _, payload = service.next_fact(session_id)
        assert payload["metadata"]["sessionProgress"] == "1/30"
        assert payload["metadata"]["timesShown"] == 2

    def test_sessions_are_independent(self, service):
        a, _ = service.next_fact(None)
        service.next_fact(a)
        b, payload = service.next_fact(None)
        assert a != b
        assert payload["metadata"]["sessionProgress"] == "1/30"

    def test_malformed_session_id_starts_new_session(self, service):
        session_id, payload = service.next_fact("not a valid id!")
        assert session_id != "not a valid id!"
        assert payload["metadata"]["sessionProgress"] == "1/30"

    def test_reset_session(self, service):
        session_id, _ = service.next_fact(None)
        service.next_fact(session_id)
        assert service.reset_session(session_id) == session_id
        _, payload = service.next_fact(session_id)
        assert payload["metadata"]["sessionProgress"] == "1/30"


class TestGeneration:

    def test_generator_asked_for_least_shown_category(self, rng):
        generator = MagicMock()
        generator.generate_unique.return_value = None
        service = FactService(generator=generator, min_cache_size=100, rng=rng)
        _, payload = service.next_fact(None)
        generator.generate_unique.assert_called_once_with(service.store, Category.ADVENTURES)
        assert payload["fact"]

    def test_generator_skipped_when_cache_full(self):
        rng = MagicMock()
        rng.random.return_value = 0.99
        rng.choice.side_effect = lambda pool: pool[0]
        generator = MagicMock()
        service = FactService(generator=generator, min_cache_size=10, rng=rng)
        service.next_fact(None)
        generator.generate_unique.assert_not_called()

    def test_generated_fact_joins_corpus(self, claude, rng):
        claude.messages.create.return_value = make_claude_response(PSIONICS)
        service = FactService(generator=FactGenerator(client=claude, rng=rng), min_cache_size=100, rng=rng)
        _, payload = service.next_fact(None)
        assert payload["metadata"]["cacheSize"] == 31
        assert service.stats()["generatedFacts"] == 1
        assert service.stats()["generator"]["generated"] == 1

    def test_generation_failure_still_serves_fact(self, claude, rng):
        claude.messages.create.side_effect = RuntimeError("API down")
        service = FactService(generator=FactGenerator(client=claude, rng=rng), min_cache_size=100, rng=rng)
        _, payload = service.next_fact(None)
        assert payload["fact"]
        assert payload["metadata"]["cacheSize"] == 30
        assert service.stats()["generator"]["failures"] == 1


class TestStats:

    def test_stats(self, service):
        a, _ = service.next_fact(None)
        service.next_fact(a)
        service.next_fact(None)
        stats = service.stats()
        assert stats["cacheSize"] == 30
        assert stats["generatedFacts"] == 0
        assert stats["evictions"] == 0
        assert stats["totalShown"] == 3
        assert stats["activeSessions"] == 2
        assert stats["generator"] is None

    def test_fresh_rng_gives_balanced_categories(self):
        service = FactService(rng=random.Random(7))
        session_id, _ = service.next_fact(None)
        for _ in range(9):
            service.next_fact(session_id)
        # ten picks, ten categories
        assert set(service.stats()["categoryDistribution"].values()) == {10.0}
