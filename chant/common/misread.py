from typing import Dict, Iterable, Iterator, Mapping, Tuple

from chant.common.lexicon import StartupDataError


class MisreadTable:
    """
    Known OCR confusions: canonical substring -> glyphs it is often misread as.

    Used only for candidate generation; a misread variant found inside a slice is
    replaced back with its canonical key.
    """

    def __init__(self, table: Mapping[str, Iterable[str]]):
        entries: Dict[str, Tuple[str, ...]] = {}
        for key, variants in table.items():
            if not isinstance(key, str) or not key:
                raise StartupDataError(f"misread table key must be a non-empty string: {key!r}")
            if isinstance(variants, str):
                raise StartupDataError(f"misread variants for {key!r} must be a list of strings")
            vals = tuple(variants)
            for v in vals:
                if not isinstance(v, str) or not v:
                    raise StartupDataError(f"misread variant for {key!r} must be a non-empty string: {v!r}")
            entries[key] = vals
        self._entries = entries

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def items(self):
        return self._entries.items()

    def variants(self, key: str) -> Tuple[str, ...]:
        return self._entries.get(key, ())

    def candidates(self, original: str) -> Iterator[str]:
        """
        Yield every rewrite of `original` that restores a misread variant to its key,
        then `original` itself. A slice that is already a canonical key is not rewritten.
        """
        if original not in self._entries:
            for key, variants in self._entries.items():
                for variant in variants:
                    if variant in original:
                        yield original.replace(variant, key)
        yield original
