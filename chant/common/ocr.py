"""
Recognizer adapters.

Every backend exposes the same narrow surface (`name`, `recognize(path, direction)`)
so the consensus engines never depend on a concrete OCR library. Backend failures
are raised as RecognitionError carrying the backend's own message; retries are the
caller's business.
"""

from __future__ import annotations

import json
import mimetypes
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytesseract
from PIL import Image

try:
    from google import genai
    from google.genai import types

    _GENAI_IMPORT_ERROR = None
except Exception as e:
    genai = None  # type: ignore[assignment]
    types = None  # type: ignore[assignment]
    _GENAI_IMPORT_ERROR = e


class Direction(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class RecognitionError(Exception):
    """A recognizer backend failed; `original_error` is the backend's raw message."""

    def __init__(self, original_error: str = ""):
        super().__init__("Failed to recognize")
        self.original_error = original_error


class Recognizer(ABC):
    name: str = "recognizer"

    @abstractmethod
    def recognize(self, image_path: str, direction: Direction = Direction.HORIZONTAL) -> str:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def order_by_grid(items: Sequence[Tuple[str, float, float]], cell: int = 100) -> str:
    """Join (text, x, y) fragments reading row-by-row on a coarse `cell`-pixel grid."""
    ordered = sorted(items, key=lambda it: (int(it[2]) // cell * cell, int(it[1]) // cell * cell))
    return "".join(text for text, _, _ in ordered)


@dataclass(frozen=True)
class LaunchConfig:
    executable: str = "tesseract"
    language: str = "jpn"
    psm: int = 6

    @property
    def status(self) -> Tuple[bool, str]:
        """(is_valid, error_message) for this tesseract launch configuration."""
        if not self.executable or not (Path(self.executable).is_file() or shutil.which(self.executable)):
            return False, "executable does not exist"
        if not 0 <= self.psm <= 13:
            return False, "psm is invalid"
        if not self.language:
            return False, "language is empty"
        return True, ""


class TesseractRecognizer(Recognizer):
    """Local tesseract binary through pytesseract."""

    name = "tesseract"

    def __init__(self, config: Optional[LaunchConfig] = None):
        self.config = config or LaunchConfig()

    def recognize(self, image_path: str, direction: Direction = Direction.HORIZONTAL) -> str:
        ok, message = self.config.status
        if not ok:
            raise RecognitionError(message)
        lang = self.config.language
        psm = self.config.psm
        if direction == Direction.VERTICAL:
            lang = f"{lang}_vert"
            psm = 5
        pytesseract.pytesseract.tesseract_cmd = self.config.executable
        try:
            with Image.open(image_path) as img:
                return pytesseract.image_to_string(img, lang=lang, config=f"--psm {psm}")
        except (pytesseract.TesseractError, OSError) as e:
            raise RecognitionError(str(e)) from e


_GEMINI_PROMPT = (
    "Transcribe the Japanese text in this image exactly as printed. "
    "Output only the text, without explanations or translation."
)


class GeminiRecognizer(Recognizer):
    """Cloud recognizer backed by a Gemini vision model."""

    name = "gemini"

    def __init__(self, model: str = "gemini-2.5-flash", api_key: Optional[str] = None, client: Any = None):
        self.model = model
        if client is not None:
            self._client = client
            return
        if genai is None:
            raise RuntimeError(
                "google-genai package not installed; pip install google-genai"
            ) from _GENAI_IMPORT_ERROR
        api_key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY or GOOGLE_API_KEY must be set in the environment")
        self._client = genai.Client(api_key=api_key)

    def recognize(self, image_path: str, direction: Direction = Direction.HORIZONTAL) -> str:
        mime_type = mimetypes.guess_type(image_path)[0] or "image/png"
        layout = "vertical (top-to-bottom, right-to-left)" if direction == Direction.VERTICAL else "horizontal"
        try:
            image_bytes = Path(image_path).read_bytes()
            resp = self._client.models.generate_content(
                model=self.model,
                contents=[
                    types.Content(
                        role="user",
                        parts=[
                            types.Part.from_text(text=f"{_GEMINI_PROMPT} The text is {layout}."),
                            types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                        ],
                    ),
                ],
                config=types.GenerateContentConfig(temperature=0.0, response_mime_type="text/plain"),
            )
        except OSError as e:
            raise RecognitionError(str(e)) from e
        except Exception as e:  # API errors surface with the backend's message
            raise RecognitionError(f"{type(e).__name__}: {e}") from e
        return resp.text or ""


class NativeRecognizer(Recognizer):
    """
    Platform OCR through a small helper executable.

    The helper is called as `<helper> <image> <direction>` and prints JSON lines of
    {"text": ..., "x": ..., "y": ...}; fragments are re-ordered on a 100px grid.
    """

    name = "native"

    def __init__(self, helper_path: str):
        self.helper_path = helper_path

    def recognize(self, image_path: str, direction: Direction = Direction.HORIZONTAL) -> str:
        cmd = [str(self.helper_path), str(image_path), direction.value]
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                  text=True, encoding="utf-8")
        except OSError as e:
            raise RecognitionError(str(e)) from e
        if proc.returncode != 0:
            raise RecognitionError(proc.stderr.strip() or f"helper exited with {proc.returncode}")
        return parse_native_output(proc.stdout)


def parse_native_output(out: str) -> str:
    items: List[Tuple[str, float, float]] = []
    for line in out.splitlines():
        if not line.strip():
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            raise RecognitionError(f"unparsable helper output: {line!r}") from e
        text = (obj.get("text") or "").replace(" ", "")
        if text:
            items.append((text, float(obj.get("x", 0)), float(obj.get("y", 0))))
    return order_by_grid(items)


RECOGNIZER_NAMES = ("tesseract", "gemini", "native")


def build_recognizer(name: str, settings: Optional[Dict[str, Any]] = None) -> Recognizer:
    settings = settings or {}
    ocr_cfg = settings.get("ocr", {}) or {}
    paths = settings.get("paths", {}) or {}
    if name == "tesseract":
        return TesseractRecognizer(LaunchConfig(
            executable=paths.get("tesseract_cmd") or "tesseract",
            language=ocr_cfg.get("lang", "jpn"),
            psm=int(ocr_cfg.get("psm", 6)),
        ))
    if name == "gemini":
        return GeminiRecognizer(model=(settings.get("gemini", {}) or {}).get("model", "gemini-2.5-flash"))
    if name == "native":
        helper = paths.get("native_helper")
        if not helper:
            raise ValueError("paths.native_helper must be set to use the native recognizer")
        return NativeRecognizer(helper)
    raise ValueError(f"Unknown OCR engine: {name} (expected one of {', '.join(RECOGNIZER_NAMES)})")
