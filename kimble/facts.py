# KimbleAI - D&D facts: data model, curated corpus and the in-memory fact cache.

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from kimble.config import FACT_CACHE_MAX
from kimble.dedup import check_candidate


class Category(str, Enum):
    EDITIONS = "editions"
    MECHANICS = "mechanics"
    LORE = "lore"
    MONSTERS = "monsters"
    NPCS = "npcs"
    ARTIFACTS = "artifacts"
    PLANES = "planes"
    ADVENTURES = "adventures"
    DEITIES = "deities"
    MISC = "misc"


class Difficulty(str, Enum):
    SURFACE = "surface"
    MEDIUM = "medium"
    DEEP = "deep"


@dataclass(frozen=True)
class Fact:
    text: str
    category: Category
    edition: str = "all"
    difficulty: Difficulty = Difficulty.SURFACE

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "category": self.category.value,
            "edition": self.edition,
            "difficulty": self.difficulty.value,
        }


# ─────────────────────────────────────────
# CURATED FACTS
# ─────────────────────────────────────────

# Fixed at process start. Three entries per category, so a full rotation
# through the curated set shows every category equally often.
CURATED_FACTS = [
    # Editions
    Fact("The original Dungeons & Dragons boxed set was published by TSR in 1974, "
         "written by Gary Gygax and Dave Arneson.",
         Category.EDITIONS, "OD&D", Difficulty.SURFACE),
    Fact("Advanced Dungeons & Dragons began with the Monster Manual in 1977, followed by the "
         "Players Handbook in 1978 and the Dungeon Masters Guide in 1979.",
         Category.EDITIONS, "AD&D 1e", Difficulty.MEDIUM),
    Fact("Third edition arrived in 2000 together with the Open Game License, which let other "
         "publishers sell products built on the d20 System rules.",
         Category.EDITIONS, "3e", Difficulty.MEDIUM),
    # Mechanics
    Fact("THAC0 stood for 'To Hit Armor Class 0' and was the attack target number in AD&D, "
         "where a lower armor class meant better protection.",
         Category.MECHANICS, "AD&D 2e", Difficulty.SURFACE),
    Fact("Fifth edition replaced piles of situational modifiers with advantage and disadvantage: "
         "roll two d20s and keep the higher or lower result.",
         Category.MECHANICS, "5e", Difficulty.SURFACE),
    Fact("Fourth edition gave every class the same power structure of at-will, encounter and daily "
         "abilities, so a wizard and a fighter refreshed resources on the same schedule.",
         Category.MECHANICS, "4e", Difficulty.MEDIUM),
    # Lore
    Fact("The Forgotten Realms started as Ed Greenwood's childhood story setting in the late 1960s, "
         "long before TSR published it as an official campaign world in 1987.",
         Category.LORE, "AD&D 1e", Difficulty.MEDIUM),
    Fact("Greyhawk was Gary Gygax's home campaign, and wizards like Mordenkainen and Bigby were "
         "born at that table before their names were attached to famous spells.",
         Category.LORE, "OD&D", Difficulty.MEDIUM),
    Fact("Dragonlance launched in 1984 as a chain of linked modules released in step with the "
         "Chronicles novel trilogy by Margaret Weis and Tracy Hickman.",
         Category.LORE, "AD&D 1e", Difficulty.SURFACE),
    # Monsters
    Fact("The beholder first appeared in the 1975 Greyhawk supplement: a floating orb with a central "
         "anti-magic eye and ten smaller eyestalks that each cast a different ray.",
         Category.MONSTERS, "OD&D", Difficulty.SURFACE),
    Fact("The owlbear, rust monster and bulette were reportedly inspired by cheap plastic toy "
         "figures that Gary Gygax found in a bag bought at a dime store.",
         Category.MONSTERS, "OD&D", Difficulty.DEEP),
    Fact("The Tarrasque is so hard to kill that in several editions it could only be slain for good "
         "by finishing it off with a wish spell.",
         Category.MONSTERS, "AD&D 1e", Difficulty.MEDIUM),
    # NPCs
    Fact("Elminster Aumar, the Sage of Shadowdale, is the best known wizard of the Forgotten Realms "
         "and one of the Chosen of the goddess Mystra.",
         Category.NPCS, "AD&D 1e", Difficulty.SURFACE),
    Fact("Drizzt Do'Urden debuted in R.A. Salvatore's 1988 novel The Crystal Shard, where he was "
         "meant to be a sidekick for the barbarian Wulfgar.",
         Category.NPCS, "AD&D 1e", Difficulty.MEDIUM),
    Fact("Strahd von Zarovich, the vampire lord of Barovia, was introduced in the 1983 module "
         "I6 Ravenloft written by Tracy and Laura Hickman.",
         Category.NPCS, "AD&D 1e", Difficulty.MEDIUM),
    # Artifacts
    Fact("The Hand and Eye of Vecna can only be used after the bearer cuts off their own hand or "
         "plucks out their own eye to make room for the relic.",
         Category.ARTIFACTS, "all", Difficulty.SURFACE),
    Fact("The Deck of Many Things can hand out a wish or wipe out a character in a single draw, "
         "which makes it a notorious campaign wrecker.",
         Category.ARTIFACTS, "all", Difficulty.SURFACE),
    Fact("The Sword of Kas was forged for Kas the Bloody-Handed, the lieutenant who turned the "
         "blade against his master Vecna and nearly ended him.",
         Category.ARTIFACTS, "AD&D 2e", Difficulty.DEEP),
    # Planes
    Fact("The Great Wheel cosmology arranges the Outer Planes in a ring sorted by alignment, with "
         "the Outlands at the center and an infinite spire rising from its middle.",
         Category.PLANES, "AD&D 2e", Difficulty.MEDIUM),
    Fact("Sigil, the City of Doors, is ruled by the silent Lady of Pain, whose passing shadow "
         "alone is enough to flay anyone who displeases her.",
         Category.PLANES, "AD&D 2e", Difficulty.SURFACE),
    Fact("Githyanki sail the Astral Plane on silver ships, a people who escaped enslavement "
         "by the illithids and still hunt their former masters.",
         Category.PLANES, "AD&D 1e", Difficulty.DEEP),
    # Adventures
    Fact("Tomb of Horrors was written by Gary Gygax for the 1975 Origins convention to humble "
         "players who bragged that their characters could survive anything.",
         Category.ADVENTURES, "AD&D 1e", Difficulty.SURFACE),
    Fact("The Keep on the Borderlands, module B2, shipped inside the Basic Set and became one of "
         "the most widely played adventures ever printed.",
         Category.ADVENTURES, "Basic", Difficulty.SURFACE),
    Fact("Curse of Strahd revisited the 1983 gothic classic in 2016, expanding the misty valley "
         "into a full campaign for fifth edition parties.",
         Category.ADVENTURES, "5e", Difficulty.MEDIUM),
    # Deities
    Fact("The first printing of Deities & Demigods included the Cthulhu and Melnibonean mythos, "
         "which were cut from later printings over licensing trouble.",
         Category.DEITIES, "AD&D 1e", Difficulty.DEEP),
    Fact("Lolth, the Demon Queen of Spiders, is worshipped by the drow, and her priestesses run "
         "underground societies through fear and intrigue.",
         Category.DEITIES, "all", Difficulty.SURFACE),
    Fact("Bahamut the Platinum Dragon and Tiamat the Queen of Chromatic Dragons are rival gods "
         "who embody the metallic and chromatic sides of dragonkind.",
         Category.DEITIES, "all", Difficulty.SURFACE),
    # Misc
    Fact("Early players bought their polyhedral dice from educational supply catalogues, because "
         "twenty-sided dice were classroom math aids before they were gaming gear.",
         Category.MISC, "OD&D", Difficulty.DEEP),
    Fact("During the Satanic Panic of the 1980s, TSR responded by renaming demons and devils to "
         "tanar'ri and baatezu in second edition.",
         Category.MISC, "AD&D 2e", Difficulty.MEDIUM),
    Fact("Dragon magazine launched in 1976 as the successor to The Strategic Review and stayed "
         "in print for more than thirty years before moving online.",
         Category.MISC, "all", Difficulty.MEDIUM),
]


# ─────────────────────────────────────────
# FACT STORE
# ─────────────────────────────────────────

class FactStore:
    """
    Curated facts plus a bounded FIFO cache of generated ones.

    When the total corpus grows past `max_size` the oldest generated fact is
    dropped. Curated facts are never evicted.
    """

    def __init__(self, curated: Optional[list] = None, max_size: int = FACT_CACHE_MAX):
        self._curated = list(CURATED_FACTS if curated is None else curated)
        self._generated: deque = deque()
        self._times_shown: dict = {}
        self.max_size = max_size
        self.evictions = 0

    def corpus(self) -> list:
        return self._curated + list(self._generated)

    def texts(self) -> list:
        return [fact.text for fact in self.corpus()]

    def cache_size(self) -> int:
        return len(self._curated) + len(self._generated)

    def generated_count(self) -> int:
        return len(self._generated)

    def by_category(self, category: Category) -> list:
        return [fact for fact in self.corpus() if fact.category == category]

    def add_generated(self, fact: Fact) -> Fact:
        """
        Validate and deduplicate `fact` against the whole corpus, then cache it.
        Raises InvalidFactError / DuplicateFactError (both FactRejected).
        """
        check_candidate(fact.text, self.texts())
        self._generated.append(fact)
        while self._generated and self.cache_size() > self.max_size:
            evicted = self._generated.popleft()
            self._times_shown.pop(evicted.text, None)
            self.evictions += 1
            print(f"[FactCache] Evicted oldest generated fact: \"{evicted.text[:40]}...\"")
        return fact

    def record_shown(self, fact: Fact) -> int:
        count = self._times_shown.get(fact.text, 0) + 1
        self._times_shown[fact.text] = count
        return count

    def times_shown(self, fact: Fact) -> int:
        return self._times_shown.get(fact.text, 0)
