import json

import pytest
from pydantic import ValidationError

from schemas import (
    ConfigLoadError,
    ConfigMalformedError,
    ConfigNotFoundError,
    ConfigUnreadableError,
    ReliabilityConfig,
)


def test_default_weights():
    config = ReliabilityConfig.default()
    assert config.reliability("tesseract") == 1.0
    assert config.reliability("native") == 1.0
    assert config.reliability("gemini") == 1.5
    assert config.reliability("unregistered") == 1.0


def test_load_yaml(tmp_path):
    path = tmp_path / "reliability.yaml"
    path.write_text("recognizer_reliability:\n  tesseract: 2.0\n  gemini: 0.5\n", encoding="utf-8")
    config = ReliabilityConfig.load(path)
    assert config.reliability("tesseract") == 2.0
    assert config.reliability("gemini") == 0.5
    assert config.reliability("native") == 1.0


def test_load_json_with_legacy_key(tmp_path):
    path = tmp_path / "reliability.json"
    path.write_text(json.dumps({"RecognizerReliability": {"gemini": 3}}), encoding="utf-8")
    assert ReliabilityConfig.load(path).reliability("gemini") == 3.0


def test_empty_mapping_uses_unit_weights(tmp_path):
    path = tmp_path / "reliability.json"
    path.write_text("{}", encoding="utf-8")
    config = ReliabilityConfig.load(path)
    assert config.recognizer_reliability == {}
    assert config.reliability("gemini") == 1.0


def test_missing_file_is_not_found(tmp_path):
    path = tmp_path / "missing.yaml"
    with pytest.raises(ConfigNotFoundError) as exc:
        ReliabilityConfig.load(path)
    err = exc.value
    assert isinstance(err, ConfigLoadError)
    assert err.cause == "not_found"
    assert err.path == str(path)
    assert isinstance(err.__cause__, FileNotFoundError)
    assert str(path) in str(err)


@pytest.mark.parametrize(
    "content",
    [
        "recognizer_reliability: [unclosed",
        "",
        "- tesseract\n- gemini\n",
        "recognizer_reliability:\n  tesseract: -1\n",
        "recognizer_reliability:\n  tesseract: heavy\n",
        "weights:\n  tesseract: 1\n",
        "recognizer_reliability:\n  gemini: .nan\n",
        "recognizer_reliability:\n  gemini: .inf\n",
        "recognizer_reliability:\n  gemini: -.inf\n",
        "recognizer_reliability:\n  gemini: true\n",
    ],
)
def test_malformed_content(tmp_path, content):
    path = tmp_path / "reliability.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigMalformedError) as exc:
        ReliabilityConfig.load(path)
    assert exc.value.cause == "malformed"
    assert exc.value.__cause__ is not None


def test_validation_error_is_chained(tmp_path):
    path = tmp_path / "reliability.yaml"
    path.write_text("recognizer_reliability:\n  gemini: 0\n", encoding="utf-8")
    with pytest.raises(ConfigMalformedError) as exc:
        ReliabilityConfig.load(path)
    assert isinstance(exc.value.__cause__, ValidationError)


def test_from_settings(tmp_path):
    assert ReliabilityConfig.from_settings({}).reliability("gemini") == 1.5
    assert ReliabilityConfig.from_settings({"paths": {"reliability_config": None}}).reliability("gemini") == 1.5

    path = tmp_path / "reliability.yaml"
    path.write_text("recognizer_reliability:\n  gemini: 4\n", encoding="utf-8")
    config = ReliabilityConfig.from_settings({"paths": {"reliability_config": str(path)}})
    assert config.reliability("gemini") == 4.0

    with pytest.raises(ConfigNotFoundError):
        ReliabilityConfig.from_settings({"paths": {"reliability_config": str(tmp_path / "gone.yaml")}})


def test_non_utf8_file_is_malformed(tmp_path):
    path = tmp_path / "reliability.yaml"
    path.write_bytes(b"\xff\xfe recognizer_reliability")
    with pytest.raises(ConfigMalformedError) as exc:
        ReliabilityConfig.load(path)
    assert isinstance(exc.value.__cause__, UnicodeDecodeError)


def test_directory_is_unreadable(tmp_path):
    with pytest.raises(ConfigUnreadableError) as exc:
        ReliabilityConfig.load(tmp_path)
    assert isinstance(exc.value, ConfigLoadError)
    assert exc.value.cause == "unreadable"
    assert isinstance(exc.value.__cause__, OSError)


def test_non_finite_weight_rejected_in_code():
    with pytest.raises(ValidationError):
        ReliabilityConfig(recognizer_reliability={"gemini": float("nan")})


def test_relative_config_path_resolves_against_settings_dir(tmp_path, monkeypatch):
    (tmp_path / "configs").mkdir()
    (tmp_path / "configs" / "reliability.yaml").write_text(
        "recognizer_reliability:\n  gemini: 2\n", encoding="utf-8")
    settings = tmp_path / "settings.yaml"
    settings.write_text("paths:\n  reliability_config: configs/reliability.yaml\n", encoding="utf-8")
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)

    from chant.common.utils import load_settings

    config = ReliabilityConfig.from_settings(load_settings(str(settings)))
    assert config.reliability("gemini") == 2.0
