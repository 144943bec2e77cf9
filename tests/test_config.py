import pytest
import yaml

import config
from config import ArchiveConfig
from core import ConfigError


@pytest.fixture
def dex_home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    monkeypatch.setenv("DEX_HOME", str(home))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    return home


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_archive_defaults_when_nothing_configured(dex_home, tmp_path):
    assert config.load_archive_config(tmp_path / "store") == ArchiveConfig(auto=False, age_days=90, keep_recent=50)


def test_project_config_overrides_user_per_key(dex_home, tmp_path):
    storage = tmp_path / "store"
    _write(dex_home / "config.yaml", {"archive": {"auto": True, "age_days": 30}})
    _write(storage / "config.yaml", {"archive": {"age_days": 10}})

    cfg = config.load_archive_config(storage)

    assert cfg == ArchiveConfig(auto=True, age_days=10, keep_recent=50)


def test_invalid_values_raise_config_error(dex_home, tmp_path):
    storage = tmp_path / "store"
    _write(storage / "config.yaml", {"archive": {"keep_recent": -1}})

    with pytest.raises(ConfigError):
        config.load_archive_config(storage)


def test_malformed_yaml_names_the_file(dex_home):
    path = dex_home / "config.yaml"
    path.parent.mkdir(parents=True)
    path.write_text("archive: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        config.load_config()

    assert str(path) in str(excinfo.value)


def test_token_lookup_order(dex_home, monkeypatch):
    assert config.get_github_token() == ""

    config.set_user_token("from-config")
    assert config.get_github_token() == "from-config"

    monkeypatch.setenv("GH_TOKEN", "from-gh")
    assert config.get_github_token() == "from-gh"

    monkeypatch.setenv("GITHUB_TOKEN", "from-github")
    assert config.get_github_token() == "from-github"

    config.set_user_token("")
    assert not (dex_home / "config.yaml").exists()


def test_label_prefix(dex_home, tmp_path):
    storage = tmp_path / "store"
    assert config.get_label_prefix(storage) == "dex"

    _write(storage / "config.yaml", {"sync": {"github": {"label_prefix": "tasks"}}})
    assert config.get_label_prefix(storage) == "tasks"


def test_archive_config_from_dict_validates_types():
    with pytest.raises(ValueError):
        ArchiveConfig.from_dict({"auto": "yes"})
    with pytest.raises(ValueError):
        ArchiveConfig.from_dict({"age_days": True})
    assert ArchiveConfig.from_dict(None) == ArchiveConfig()
