"""Tests for configuration loading."""

import pytest
from pathlib import Path

from memolog.config import DEFAULT_MEMO_TEMPLATE, load_config

_ENV_KEYS = [
    "MEMOLOG_ROOT",
    "MEMOLOG_DEFAULT_CATEGORY",
    "MEMOLOG_ORDER",
    "MEMOLOG_TEMPLATE",
    "MEMOLOG_PATH_FORMAT",
    "MEMOLOG_TRASH_ENABLED",
    "MEMOLOG_TRASH_RETENTION_DAYS",
    "MEMOLOG_CACHE_CAPACITY",
    "MEMOLOG_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        config = load_config()
        assert config.default_category == "work"
        assert config.order == "asc"
        assert config.memo_template == DEFAULT_MEMO_TEMPLATE
        assert config.path_format == "%Y%m%d-%C.md"
        assert config.trash.enabled is True
        assert config.trash.retention_days == 30
        assert config.cache.capacity == 50
        assert config.categories == []

    def test_env_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MEMOLOG_ROOT", str(tmp_path / "notes"))
        monkeypatch.setenv("MEMOLOG_TRASH_ENABLED", "false")
        monkeypatch.setenv("MEMOLOG_TRASH_RETENTION_DAYS", "7")
        monkeypatch.setenv("MEMOLOG_ORDER", "desc")

        config = load_config()
        assert config.root_dir == tmp_path / "notes"
        assert config.trash.enabled is False
        assert config.trash.retention_days == 7
        assert config.order == "desc"

    def test_toml_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        toml_path = tmp_path / "memolog.toml"
        toml_path.write_text("""
root_dir = "/srv/memos"
default_category = "journal"

[trash]
retention_days = 14

[cache]
capacity = 10

[[categories]]
name = "journal"
use_todo_list = true
order = "desc"

[[categories]]
name = "ideas"
directory = "brain"
template = "## %H:%M\\n{{content}}"
""")
        config = load_config(toml_path)
        assert config.root_dir == Path("/srv/memos")
        assert config.default_category == "journal"
        assert config.trash.retention_days == 14
        assert config.cache.capacity == 10
        assert [c.name for c in config.categories] == ["journal", "ideas"]
        assert config.category("journal").directory == "journal"
        assert config.category("journal").use_todo_list
        assert config.order_for("journal") == "desc"
        assert config.order_for("ideas") == "asc"
        assert config.category("ideas").directory == "brain"
        assert config.template_for("ideas") == "## %H:%M\n{{content}}"
        assert config.template_for("journal") == DEFAULT_MEMO_TEMPLATE

    def test_cwd_file_is_found(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "memolog.toml").write_text('default_category = "inbox"\n')

        assert load_config().default_category == "inbox"

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MEMOLOG_DEFAULT_CATEGORY", "env")

        toml_path = tmp_path / "memolog.toml"
        toml_path.write_text("""
default_category = "file"
""")
        config = load_config(toml_path)
        assert config.default_category == "env"  # env wins

    def test_unknown_category_uses_globals(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(tmp_path / "missing.toml")
        cat = config.category("misc")
        assert cat.directory == "misc"
        assert not cat.use_todo_list
        assert config.template_for("misc") == config.memo_template
