import math
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
    model_validator,
)

from chant.common.utils import settings_path

SENTENCE_END = "。"

_HIRAGANA_RE = re.compile(r"[ぁ-ん]")


def is_kana(ch: str) -> bool:
    return bool(_HIRAGANA_RE.match(ch))


def _split_classes(text: str):
    kanji = [c for c in text if not is_kana(c)]
    kana = [c for c in text if is_kana(c)]
    return kanji, kana


def _positional_matches(a: List[str], b: List[str], weight: int) -> int:
    return sum(weight for x, y in zip(a, b) if x == y)


class ReRecognizeStep(BaseModel):
    """One correction attempt; `distance is None` marks the no-match sentinel."""

    model_config = ConfigDict(frozen=True)

    distance: Optional[int] = None
    corrected_word: str = ""
    original_slice: str = ""
    misread_fixed_slice: str = ""
    consumed_length: int = 0

    @model_validator(mode="after")
    def consumed_matches_word(self):
        expected = len(self.corrected_word) if self.distance is not None else 0
        if self.consumed_length != expected:
            raise ValueError(
                f"consumed_length {self.consumed_length} does not match corrected word {self.corrected_word!r}"
            )
        return self

    @classmethod
    def no_match(cls, original_slice: str = "") -> "ReRecognizeStep":
        return cls(distance=None, original_slice=original_slice)

    @property
    def is_match(self) -> bool:
        return self.distance is not None

    @computed_field
    @property
    def normalized_distance(self) -> Optional[float]:
        if self.distance is None:
            return None
        if self.consumed_length == 0:
            return float(self.distance)
        return self.distance / self.consumed_length

    @computed_field
    @property
    def potential(self) -> Optional[float]:
        """
        Tie-break score among equally distant words: kanji agreement with the
        original slice counts double, hiragana agreement counts once.
        """
        if self.normalized_distance is None:
            return None
        orig_kanji, orig_kana = _split_classes(self.original_slice)
        word_kanji, word_kana = _split_classes(self.corrected_word)
        return (
            self.normalized_distance
            + _positional_matches(orig_kanji, word_kanji, 2)
            + _positional_matches(orig_kana, word_kana, 1)
        )


class GuideResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    original: str
    corrected: str
    history: List[ReRecognizeStep] = Field(default_factory=list)
    fallback: bool = False


class RecognizerObservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    raw_text: str
    original_text: str
    corrected_text: str
    history: List[ReRecognizeStep] = Field(default_factory=list)
    reliability: float = 1.0


class ConsensusAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = ""
    observations: List[RecognizerObservation] = Field(default_factory=list)


class FrameReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    frame: int
    raw_text: str
    original_text: str
    corrected_text: str
    history: List[ReRecognizeStep] = Field(default_factory=list)


class FrameConsensusAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = ""
    length_votes: Dict[int, int] = Field(default_factory=dict)
    readings: List[FrameReading] = Field(default_factory=list)


class DecodeResult(BaseModel):
    exit_code: int
    output: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and bool(self.output)


class ConfigLoadError(Exception):
    """Reliability config could not be loaded; `cause` is "not_found", "unreadable" or "malformed"."""

    cause = "unknown"

    def __init__(self, path: str):
        self.path = str(path)
        super().__init__(f"Failed to load reliability config from file: {self.path}")


class ConfigNotFoundError(ConfigLoadError):
    cause = "not_found"


class ConfigUnreadableError(ConfigLoadError):
    cause = "unreadable"


class ConfigMalformedError(ConfigLoadError):
    cause = "malformed"


DEFAULT_RELIABILITY: Dict[str, float] = {
    # gemini alone outvotes any single engine, but loses when the other two agree
    "tesseract": 1.0,
    "native": 1.0,
    "gemini": 1.5,
}


class ReliabilityConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    recognizer_reliability: Dict[str, float] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("recognizer_reliability", "RecognizerReliability"),
    )

    @field_validator("recognizer_reliability", mode="before")
    @classmethod
    def weights_not_bool(cls, v):
        if isinstance(v, dict):
            flags = sorted(k for k, w in v.items() if isinstance(w, bool))
            if flags:
                raise ValueError(f"reliability weights must be numbers, not booleans: {flags}")
        return v

    @field_validator("recognizer_reliability")
    @classmethod
    def weights_positive(cls, v):
        bad = {k: w for k, w in v.items() if not (math.isfinite(w) and w > 0)}
        if bad:
            raise ValueError(f"reliability weights must be finite and positive: {bad}")
        return v

    def reliability(self, name: str) -> float:
        return self.recognizer_reliability.get(name, 1.0)

    @classmethod
    def default(cls) -> "ReliabilityConfig":
        return cls(recognizer_reliability=dict(DEFAULT_RELIABILITY))

    @classmethod
    def load(cls, path) -> "ReliabilityConfig":
        """Load from a YAML/JSON file. Raises a ConfigLoadError subclass naming the cause."""
        try:
            raw = Path(path).read_bytes()
        except FileNotFoundError as e:
            raise ConfigNotFoundError(path) from e
        except OSError as e:
            raise ConfigUnreadableError(path) from e
        try:
            data = yaml.safe_load(raw.decode("utf-8"))
        except (UnicodeDecodeError, yaml.YAMLError) as e:
            raise ConfigMalformedError(path) from e
        if not isinstance(data, dict):
            raise ConfigMalformedError(path) from TypeError(
                f"expected a mapping, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigMalformedError(path) from e

    @classmethod
    def from_settings(cls, settings: Optional[dict]) -> "ReliabilityConfig":
        path = settings_path(settings, ((settings or {}).get("paths") or {}).get("reliability_config"))
        if not path:
            return cls.default()
        return cls.load(path)
