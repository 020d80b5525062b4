"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from shared.config import GlobalConfig, InspectConfig, PEInspectConfig, get_config, reset_config


def test_defaults_without_file(tmp_path):
    config = InspectConfig()
    assert config.peinspect == PEInspectConfig()
    assert config.peinspect.target_machine is None
    assert config.peinspect.max_codeview_path == 4096
    assert config.global_settings == GlobalConfig()


def test_load_explicit_path(tmp_path):
    path = tmp_path / "peinspect.toml"
    path.write_text(
        '[global]\nlog_level = "DEBUG"\nunknown = 1\n'
        '[peinspect]\ntarget_machine = 0x14c\nmax_codeview_path = 512\n'
    )
    config = InspectConfig.load(path)
    assert config.global_settings.log_level == "DEBUG"
    assert config.peinspect.target_machine == 0x14C
    assert config.peinspect.max_codeview_path == 512
    assert config.peinspect.output_format == "table"


def test_explicit_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        InspectConfig.load(tmp_path / "missing.toml")


def test_environment_override(tmp_path, monkeypatch):
    path = tmp_path / "env.toml"
    path.write_text('[peinspect]\noutput_format = "json"\n')
    monkeypatch.setenv("PEINSPECT_CONFIG", str(path))
    assert get_config().peinspect.output_format == "json"


def test_environment_missing_file(tmp_path, monkeypatch):
    monkeypatch.setenv("PEINSPECT_CONFIG", str(tmp_path / "nope.toml"))
    with pytest.raises(FileNotFoundError):
        InspectConfig.load()


def test_get_config_is_cached(tmp_path, monkeypatch):
    first = get_config()
    assert get_config() is first
    reset_config()
    assert get_config() is not first


def test_to_dict():
    data = InspectConfig().to_dict()
    assert data["peinspect"]["max_codeview_path"] == 4096
    assert data["global_settings"]["log_level"] == "INFO"


@pytest.mark.parametrize(
    "section",
    [
        "max_codeview_path = 0",
        'output_format = "html"',
        "target_machine = [1, 2]",
    ],
)
def test_invalid_values_rejected(tmp_path, section):
    path = tmp_path / "bad.toml"
    path.write_text(f"[peinspect]\n{section}\n")
    with pytest.raises(ValueError):
        InspectConfig.load(path)
