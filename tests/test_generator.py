"""
Tests for AI fact generation. Claude is a MagicMock throughout.
"""

import random
from unittest.mock import MagicMock

import pytest

from conftest import make_claude_response
from kimble.facts import Category, Difficulty, Fact, FactStore
from kimble.generator import FactGenerator, looks_like_dnd, should_generate_new_fact

THAC0 = Fact(
    "THAC0 stood for To Hit Armor Class 0 and was used for attack rolls in AD&D games.",
    Category.MECHANICS,
)
PSIONICS = "Psionics debuted in the Eldritch Wizardry supplement published by TSR back in 1976."
OFF_TOPIC = "Bananas are berries while strawberries technically are not, according to botanists."


@pytest.fixture
def fact_store():
    return FactStore(curated=[THAC0])


@pytest.fixture
def client():
    client = MagicMock()
    client.messages.create.return_value = make_claude_response(PSIONICS)
    return client


class TestShouldGenerate:

    def test_always_below_minimum(self):
        rng = MagicMock()
        rng.random.return_value = 0.99
        assert should_generate_new_fact(30, min_cache_size=100, rng=rng)

    def test_occasional_refresh_when_full(self):
        rng = MagicMock()
        rng.random.return_value = 0.05
        assert should_generate_new_fact(120, min_cache_size=100, rng=rng)
        rng.random.return_value = 0.5
        assert not should_generate_new_fact(120, min_cache_size=100, rng=rng)


class TestLooksLikeDnd:

    def test_dnd_text(self):
        assert looks_like_dnd(PSIONICS)
        assert looks_like_dnd(THAC0.text)

    def test_off_topic_text(self):
        assert not looks_like_dnd(OFF_TOPIC)


class TestGenerate:

    def test_returns_fact(self, client):
        generator = FactGenerator(client=client, rng=random.Random(3))
        fact = generator.generate(Category.MISC)
        assert fact.text == PSIONICS
        assert fact.category == Category.MISC
        assert fact.edition == "all"
        assert isinstance(fact.difficulty, Difficulty)

    def test_strips_quotes(self, client):
        client.messages.create.return_value = make_claude_response(f'"{PSIONICS}"')
        fact = FactGenerator(client=client).generate(Category.MISC)
        assert fact.text == PSIONICS

    def test_request_shape(self, client):
        FactGenerator(client=client, model="test-model").generate(Category.MONSTERS, avoid=["Old fact."])
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 200
        prompt = kwargs["messages"][0]["content"]
        assert "iconic monsters" in prompt
        assert "- Old fact." in prompt

    def test_api_failure_returns_none(self, client):
        client.messages.create.side_effect = RuntimeError("overloaded")
        generator = FactGenerator(client=client)
        assert generator.generate(Category.MISC) is None
        assert generator.failures == 1


class TestGenerateUnique:

    def test_caches_new_fact(self, client, fact_store):
        generator = FactGenerator(client=client)
        fact = generator.generate_unique(fact_store, Category.MISC)
        assert fact.text == PSIONICS
        assert fact_store.generated_count() == 1
        assert generator.generated == 1

    def test_avoid_list_contains_category_facts(self, client, fact_store):
        FactGenerator(client=client).generate_unique(fact_store, Category.MECHANICS)
        prompt = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert THAC0.text in prompt

    def test_retries_rejected_candidates(self, client, fact_store):
        client.messages.create.side_effect = [
            make_claude_response(OFF_TOPIC),
            make_claude_response(THAC0.text),
            make_claude_response(PSIONICS),
        ]
        generator = FactGenerator(client=client)
        fact = generator.generate_unique(fact_store, Category.MISC, max_attempts=3)
        assert fact.text == PSIONICS
        assert generator.rejected == 2
        assert client.messages.create.call_count == 3

    def test_gives_up_after_max_attempts(self, client, fact_store):
        client.messages.create.return_value = make_claude_response(THAC0.text)
        generator = FactGenerator(client=client)
        assert generator.generate_unique(fact_store, Category.MISC, max_attempts=3) is None
        assert generator.rejected == 3
        assert fact_store.generated_count() == 0

    def test_invalid_length_rejected(self, client, fact_store):
        client.messages.create.return_value = make_claude_response("A short D&D fact.")
        generator = FactGenerator(client=client)
        assert generator.generate_unique(fact_store, Category.MISC, max_attempts=2) is None
        assert generator.rejected == 2

    def test_api_failure_stops_immediately(self, client, fact_store):
        client.messages.create.side_effect = RuntimeError("timeout")
        generator = FactGenerator(client=client)
        assert generator.generate_unique(fact_store, Category.MISC, max_attempts=3) is None
        assert client.messages.create.call_count == 1
        assert generator.failures == 1
