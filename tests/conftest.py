from __future__ import annotations

from pathlib import Path

import pytest

from chclient import config as config_module


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the default config file at an empty location and clear client env vars."""

    config_file = tmp_path / "home-config" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_file)
    monkeypatch.delenv("CLIENT_USER", raising=False)
    monkeypatch.delenv("CLIENT_PASSWORD", raising=False)
    return config_file
