import pytest
from pydantic import ValidationError

from rembg_service.config import Settings


def test_onnx_providers_default_is_none(monkeypatch):
    monkeypatch.delenv("ONNX_PROVIDERS", raising=False)
    assert Settings(_env_file=None).onnx_providers is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("CPUExecutionProvider", ["CPUExecutionProvider"]),
        ("CUDAExecutionProvider, CPUExecutionProvider", ["CUDAExecutionProvider", "CPUExecutionProvider"]),
        (" , ", None),
    ],
)
def test_onnx_providers_from_plain_env(monkeypatch, raw, expected):
    monkeypatch.setenv("ONNX_PROVIDERS", raw)
    assert Settings(_env_file=None).onnx_providers == expected


def test_onnx_providers_accepts_a_list():
    settings = Settings(_env_file=None, onnx_providers=["CPUExecutionProvider"])
    assert settings.onnx_providers == ["CPUExecutionProvider"]


def test_u2net_home_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("U2NET_HOME", str(tmp_path))
    assert Settings(_env_file=None).u2net_home == tmp_path


def test_default_variant_is_validated(monkeypatch):
    monkeypatch.setenv("DEFAULT_VARIANT", "large")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
