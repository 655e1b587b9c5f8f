from .utils import (
    load_settings,
    settings_path,
    ensure_dir,
    save_json,
    save_jsonl,
    append_jsonl,
    read_jsonl,
    ProgressLogger,
    PROGRESS_EVENT_SCHEMA,
    PROGRESS_STATUS_VALUES,
    validate_progress_event,
)
from .ocr import Direction, RecognitionError, Recognizer, build_recognizer

__all__ = [
    "load_settings",
    "settings_path",
    "ensure_dir",
    "save_json",
    "save_jsonl",
    "append_jsonl",
    "read_jsonl",
    "ProgressLogger",
    "PROGRESS_EVENT_SCHEMA",
    "PROGRESS_STATUS_VALUES",
    "validate_progress_event",
    "Direction",
    "RecognitionError",
    "Recognizer",
    "build_recognizer",
]
