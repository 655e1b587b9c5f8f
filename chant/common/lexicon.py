from typing import Dict, FrozenSet, Iterable, List, Tuple


class StartupDataError(Exception):
    """Bundled reference data (lexicon, misread table) could not be loaded."""


class Lexicon:
    """
    Closed dictionary of spell words (verbs + nouns).

    Words are grouped by length in first-seen order (verbs first), so
    `words_of_length` is deterministic for tie-breaking. Immutable after construction.
    """

    def __init__(self, verbs: Iterable[str], nouns: Iterable[str]):
        self._verbs = self._checked("verbs", verbs)
        self._nouns = self._checked("nouns", nouns)

        grouped: Dict[int, List[str]] = {}
        seen = set()
        for word in self._verbs + self._nouns:
            if word in seen:
                continue
            seen.add(word)
            grouped.setdefault(len(word), []).append(word)

        self._by_length: Dict[int, Tuple[str, ...]] = {n: tuple(ws) for n, ws in grouped.items()}
        self._by_length_set: Dict[int, FrozenSet[str]] = {n: frozenset(ws) for n, ws in grouped.items()}
        self._alphabet: FrozenSet[str] = frozenset(ch for word in seen for ch in word)

    @staticmethod
    def _checked(kind: str, words: Iterable[str]) -> Tuple[str, ...]:
        out = []
        for word in words:
            if not isinstance(word, str) or not word:
                raise StartupDataError(f"{kind} contains an invalid word: {word!r}")
            out.append(word)
        return tuple(out)

    @property
    def verbs(self) -> Tuple[str, ...]:
        return self._verbs

    @property
    def nouns(self) -> Tuple[str, ...]:
        return self._nouns

    @property
    def alphabet(self) -> FrozenSet[str]:
        return self._alphabet

    @property
    def lengths(self) -> Tuple[int, ...]:
        return tuple(sorted(self._by_length))

    def contains(self, char: str) -> bool:
        return char in self._alphabet

    def words_of_length(self, n: int) -> Tuple[str, ...]:
        return self._by_length.get(n, ())

    def has_word(self, word: str) -> bool:
        return word in self._by_length_set.get(len(word), frozenset())

    def __len__(self) -> int:
        return sum(len(ws) for ws in self._by_length.values())

    def __repr__(self) -> str:
        return f"Lexicon(words={len(self)}, lengths={list(self.lengths)})"
