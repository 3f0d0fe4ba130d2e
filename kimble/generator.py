# KimbleAI - AI-generated D&D facts.
# Claude writes a new fact for a target category; the fact only enters the
# cache after validation and deduplication against the whole corpus.

import random
from typing import Optional

from kimble.config import FACT_GENERATION_ATTEMPTS, FACT_MIN_CACHE_SIZE, FACT_MODEL
from kimble.dedup import FactRejected
from kimble.facts import Category, Difficulty, Fact, FactStore
from kimble.llm import get_claude, response_text

# Chance of generating even when the cache is already full enough.
REFRESH_PROBABILITY = 0.10

# At least one of these must appear for a generated fact to count as D&D trivia.
DND_KEYWORDS = [
    "dnd", "d&d", "dungeons", "dragons", "edition", "thac0", "gygax", "arneson",
    "wizard", "cleric", "fighter", "rogue", "spell", "monster", "dragon", "demon",
    "devil", "plane", "dungeon", "campaign", "adventure", "dice", "roll", "tsr",
    "module", "setting", "artifact", "deity", "god",
]

CATEGORY_HINTS = {
    Category.EDITIONS: "the history of D&D editions and their publication",
    Category.MECHANICS: "game rules and mechanics across editions",
    Category.LORE: "campaign settings and world lore",
    Category.MONSTERS: "iconic monsters and their origins",
    Category.NPCS: "famous non-player characters",
    Category.ARTIFACTS: "legendary artifacts and magic items",
    Category.PLANES: "the planes of existence and cosmology",
    Category.ADVENTURES: "classic published adventures and modules",
    Category.DEITIES: "gods, demigods and pantheons",
    Category.MISC: "the hobby, its culture and behind-the-scenes history",
}


def should_generate_new_fact(cache_size: int, min_cache_size: int = FACT_MIN_CACHE_SIZE, rng=random) -> bool:
    """Always below the minimum cache size, otherwise occasionally to keep the cache fresh."""
    if cache_size < min_cache_size:
        return True
    return rng.random() < REFRESH_PROBABILITY


def looks_like_dnd(text: str) -> bool:
    lower = text.lower()
    return any(keyword in lower for keyword in DND_KEYWORDS)


class FactGenerator:
    """Thin wrapper around the Anthropic Messages API for fact generation."""

    def __init__(self, client=None, model: str = FACT_MODEL, rng=random):
        self._client = client
        self.model = model
        self.rng = rng
        self.generated = 0
        self.rejected = 0
        self.failures = 0

    @property
    def client(self):
        if self._client is None:
            self._client = get_claude()
        return self._client

    def _prompt(self, category: Category, difficulty: Difficulty, avoid: list) -> str:
        avoid_block = ""
        if avoid:
            listed = "\n".join(f"- {text}" for text in avoid)
            avoid_block = f"\n\nDo NOT repeat or rephrase any of these facts:\n{listed}"
        return (
            f"Write one true, surprising Dungeons & Dragons trivia fact about {CATEGORY_HINTS[category]}. "
            f"Difficulty: {difficulty.value} (surface = widely known, deep = only long-time fans know it). "
            f"One or two sentences, between 80 and 300 characters. "
            f"Output ONLY the fact text: no preamble, no quotes, no numbering.{avoid_block}"
        )

    def generate(self, category: Category, avoid: Optional[list] = None) -> Optional[Fact]:
        """Ask Claude for one fact. Returns None if the API call fails for any reason."""
        difficulty = self.rng.choice(list(Difficulty))
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=200,
                messages=[{"role": "user", "content": self._prompt(category, difficulty, avoid or [])}],
            )
            text = response_text(response).strip().strip('"').strip()
        except Exception as e:
            self.failures += 1
            print(f"[FactGen] Generation failed: {e}")
            return None
        return Fact(text=text, category=category, edition="all", difficulty=difficulty)

    def generate_unique(
        self,
        store: FactStore,
        category: Category,
        max_attempts: int = FACT_GENERATION_ATTEMPTS,
    ) -> Optional[Fact]:
        """
        Generate a fact and add it to `store`, retrying rejected candidates up to
        `max_attempts` times. Returns the cached fact, or None if nothing survived
        (the caller then serves an already-cached fact).
        """
        for attempt in range(1, max_attempts + 1):
            avoid = [f.text for f in store.by_category(category)][-8:]
            fact = self.generate(category, avoid=avoid)
            if fact is None:
                # Service is down; retrying now just adds latency.
                return None

            if not looks_like_dnd(fact.text):
                self.rejected += 1
                print(f"[FactGen] Attempt {attempt}/{max_attempts} rejected: no D&D keywords found")
                continue

            try:
                store.add_generated(fact)
            except FactRejected as e:
                self.rejected += 1
                print(f"[FactGen] Attempt {attempt}/{max_attempts} rejected: {e}")
                continue

            self.generated += 1
            print(f"[FactGen] Cached new {category.value} fact (cache size {store.cache_size()})")
            return fact

        return None
