# KimbleAI - category balancing for the facts widget.
# Tracks how often each category has been shown and points selection at
# whichever category is lagging behind.

from typing import Iterable, Optional

from kimble.facts import Category

# A category is underrepresented when its count is below this share of the mean.
UNDERREPRESENTED_RATIO = 0.8


class CategoryBalancer:
    """
    Per-category display counters.

    One instance is owned by the fact service for the life of the process;
    tests build their own. Updates are best effort: a lost increment under
    concurrent requests only skews the balance slightly.
    """

    def __init__(self, categories: Optional[Iterable[Category]] = None):
        cats = list(Category) if categories is None else list(categories)
        # Alphabetical order doubles as the tie-break for least-shown lookups.
        self._counts = {c: 0 for c in sorted(cats, key=lambda c: c.value)}
        self._total = 0

    def track_fact(self, category: Category) -> None:
        self._counts[category] = self._counts.get(category, 0) + 1
        self._total += 1

    def count(self, category: Category) -> int:
        return self._counts.get(category, 0)

    def total(self) -> int:
        return self._total

    def get_least_shown_category(self, among: Optional[Iterable[Category]] = None) -> Optional[Category]:
        """
        Category with the smallest counter. Ties go to the alphabetically first
        category. `among` restricts the search to a subset (e.g. categories that
        still have unseen facts). Returns None only when there is nothing to pick.
        """
        if among is None:
            pool = list(self._counts)
        else:
            wanted = set(among)
            pool = sorted(wanted, key=lambda c: c.value)
        if not pool:
            return None
        return min(pool, key=lambda c: (self._counts.get(c, 0), c.value))

    def is_underrepresented(self, category: Category) -> bool:
        if not self._counts:
            return False
        mean = self._total / len(self._counts)
        return self._counts.get(category, 0) < mean * UNDERREPRESENTED_RATIO

    def get_distribution(self) -> dict:
        """Share of shown facts per category, in percent."""
        if self._total == 0:
            return {c.value: 0.0 for c in self._counts}
        return {c.value: round(n / self._total * 100, 2) for c, n in self._counts.items()}

    def reset(self) -> None:
        for c in self._counts:
            self._counts[c] = 0
        self._total = 0
