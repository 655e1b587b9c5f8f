from rapidfuzz.distance import Levenshtein


def levenshtein(a: str, b: str, substitution_cost: int = 1) -> int:
    """Edit distance with unit insert/delete and a configurable substitution cost."""
    return Levenshtein.distance(a, b, weights=(1, 1, substitution_cost))


class EditDistance:
    """Levenshtein calculator bound to one substitution cost."""

    def __init__(self, substitution_cost: int = 1):
        if substitution_cost < 0:
            raise ValueError("substitution_cost must be >= 0")
        self.substitution_cost = substitution_cost
        self._weights = (1, 1, substitution_cost)

    def distance(self, a: str, b: str) -> int:
        return Levenshtein.distance(a, b, weights=self._weights)

    def __repr__(self) -> str:
        return f"EditDistance(substitution_cost={self.substitution_cost})"
