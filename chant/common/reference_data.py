"""
Startup loading of the bundled reference data.

The lexicon ships as two JSON files (verbs, nouns), each a mapping of
category -> list of words; the misread table is a JSON mapping of
canonical -> list of misread variants. Any failure here is fatal.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from chant.common.lexicon import Lexicon, StartupDataError
from chant.common.misread import MisreadTable
from chant.common.utils import settings_path

DATA_DIR = Path(__file__).resolve().parents[2] / "data"
DEFAULT_VERBS_PATH = DATA_DIR / "lexicon" / "verbs.json"
DEFAULT_NOUNS_PATH = DATA_DIR / "lexicon" / "nouns.json"
DEFAULT_MISREAD_PATH = DATA_DIR / "misread_table.json"


@dataclass(frozen=True)
class ReferenceData:
    lexicon: Lexicon
    misread_table: MisreadTable


def _load_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise StartupDataError(f"Failed to load reference data from {path}") from e
    except json.JSONDecodeError as e:
        raise StartupDataError(f"Failed to parse reference data in {path}") from e


def load_word_list(path) -> List[str]:
    """Flatten a category -> words mapping into one list, in file order."""
    path = Path(path)
    data = _load_json(path)
    if not isinstance(data, dict):
        raise StartupDataError(f"Word list {path} must be a mapping of category -> words")
    words: List[str] = []
    for category, items in data.items():
        if not isinstance(items, list):
            raise StartupDataError(f"Word list {path}: category {category!r} is not a list")
        words.extend(items)
    return words


def load_lexicon(verbs_path=DEFAULT_VERBS_PATH, nouns_path=DEFAULT_NOUNS_PATH) -> Lexicon:
    return Lexicon(load_word_list(verbs_path), load_word_list(nouns_path))


def load_misread_table(path=DEFAULT_MISREAD_PATH) -> MisreadTable:
    path = Path(path)
    data = _load_json(path)
    if not isinstance(data, dict):
        raise StartupDataError(f"Misread table {path} must be a mapping of key -> variants")
    return MisreadTable(data)


def load_reference_data(settings: Optional[Dict[str, Any]] = None) -> ReferenceData:
    """Load lexicon + misread table using `data` paths from settings (bundled files by default)."""
    data_cfg = (settings or {}).get("data", {}) or {}

    def _path(key, default):
        return settings_path(settings, data_cfg.get(key)) or default

    lexicon = load_lexicon(_path("verbs", DEFAULT_VERBS_PATH), _path("nouns", DEFAULT_NOUNS_PATH))
    misread_table = load_misread_table(_path("misread_table", DEFAULT_MISREAD_PATH))
    return ReferenceData(lexicon=lexicon, misread_table=misread_table)
