import json
import os
import yaml
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from pathlib import Path

# Directory of the loaded settings file; relative paths in settings resolve against it.
SETTINGS_DIR_KEY = "settings_dir"

# Shape of one line in pipeline_events.jsonl.
PROGRESS_EVENT_SCHEMA: Dict[str, Tuple[type, ...]] = {
    "timestamp": (str,),
    "run_id": (str, type(None)),
    "stage": (str,),
    "status": (str,),
    "current": (int, type(None)),
    "total": (int, type(None)),
    "percent": (float, int, type(None)),
    "message": (str, type(None)),
    "artifact": (str, type(None)),
    "module_id": (str, type(None)),
    "summary": (dict,),
}
# `warning` flags a non-fatal issue (Gate fallbacks); the stage lifecycle in the state file
# only moves through running/done/failed/skipped.
PROGRESS_STATUS_VALUES = {"running", "done", "failed", "skipped", "warning"}
_LIFECYCLE = {"done", "failed", "skipped"}


def load_settings(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must be a mapping")
    data.setdefault(SETTINGS_DIR_KEY, str(Path(path).resolve().parent))
    return data


def settings_path(settings: Optional[Dict[str, Any]], value) -> Optional[str]:
    """Resolve a path taken from settings against the settings file's directory."""
    if not value:
        return None
    path = Path(value)
    if path.is_absolute():
        return str(path)
    base = (settings or {}).get(SETTINGS_DIR_KEY)
    return str(Path(base) / path) if base else str(path)


def ensure_dir(path: str):
    os.makedirs(path, exist_ok=True)


def save_json(path: str, data: Any):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def save_jsonl(path: str, rows):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(row, ensure_ascii=False) + "\n")


def append_jsonl(path: str, row):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(row, ensure_ascii=False) + "\n")


def read_jsonl(path: str):
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                yield json.loads(line)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _matches(val: Any, allowed: Tuple[type, ...]) -> bool:
    if isinstance(val, bool):
        return bool in allowed
    return isinstance(val, allowed)


def validate_progress_event(event: Dict[str, Any]):
    """Reject malformed progress events before they reach the events file."""
    missing = [k for k in PROGRESS_EVENT_SCHEMA if k not in event]
    if missing:
        raise ValueError(f"Missing progress event fields: {missing}")
    if event["status"] not in PROGRESS_STATUS_VALUES:
        raise ValueError(f"Invalid progress status: {event['status']}")
    for key, allowed in PROGRESS_EVENT_SCHEMA.items():
        if not _matches(event[key], allowed):
            names = ", ".join("None" if t is type(None) else t.__name__ for t in allowed)
            raise ValueError(f"Field '{key}' expected [{names}], got {type(event[key]).__name__}")


class ProgressLogger:
    """
    Stage progress for the correction/consensus pipeline.

    Events are appended to `progress_path` (JSONL). `state_path` keeps one entry per
    stage (gate, consensus, frames, recognize, validate, decode) with its lifecycle
    status, the artifact it wrote and the stage summary, e.g. the consensus text or
    how many readings fell back to their uncorrected form.
    """

    def __init__(self, state_path: Optional[str] = None, progress_path: Optional[str] = None,
                 run_id: Optional[str] = None):
        self.state_path = state_path
        self.progress_path = progress_path
        self.run_id = run_id
        for p in (state_path, progress_path):
            if p:
                Path(p).parent.mkdir(parents=True, exist_ok=True)

    def log(self, stage: str, status: str, current: Optional[int] = None, total: Optional[int] = None,
            message: Optional[str] = None, artifact: Optional[str] = None, module_id: Optional[str] = None,
            summary: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        percent = round(current / total * 100, 1) if current is not None and total else None
        event = {
            "timestamp": _now(),
            "run_id": self.run_id,
            "stage": stage,
            "status": status,
            "current": current,
            "total": total,
            "percent": percent,
            "message": message,
            "artifact": artifact,
            "module_id": module_id,
            "summary": summary or {},
        }
        validate_progress_event(event)

        if self.progress_path:
            append_jsonl(self.progress_path, event)
        if self.state_path:
            self._update_state(event)
        return event

    def _read_state(self) -> Dict[str, Any]:
        if not os.path.exists(self.state_path):
            return {}
        try:
            with open(self.state_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError):
            return {}

    def _update_state(self, event: Dict[str, Any]):
        state = self._read_state()
        if self.run_id:
            state["run_id"] = self.run_id
        stages = state.setdefault("stages", {})
        stage_state = stages.setdefault(event["stage"], {})

        status = event["status"]
        if status == "warning":
            prev = stage_state.get("status")
            status = prev if prev in _LIFECYCLE else "running"
            stage_state.setdefault("warnings", []).append(event["message"])

        stage_state.update({
            "status": status,
            "updated_at": event["timestamp"],
            "artifact": event["artifact"] or stage_state.get("artifact"),
            "module_id": event["module_id"] or stage_state.get("module_id"),
            "progress": {
                "current": event["current"],
                "total": event["total"],
                "percent": event["percent"],
                "message": event["message"],
            },
        })
        if event["summary"]:
            stage_state.setdefault("summary", {}).update(event["summary"])

        with open(self.state_path, "w", encoding="utf-8") as f:
            json.dump(state, f, ensure_ascii=False, indent=2)
