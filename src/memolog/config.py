"""Configuration loading from environment variables and memolog.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from memolog.memo.types import SortOrder

_DEFAULT_ROOT = Path.home() / ".memolog" / "vault"
_CONFIG_FILENAME = "memolog.toml"

DEFAULT_MEMO_TEMPLATE = "# %Y-%m-%d %H:%M:%S\n{{content}}"
DEFAULT_PATH_FORMAT = "%Y%m%d-%C.md"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TrashConfig:
    """Soft-delete behaviour."""

    enabled: bool = True
    retention_days: int = 30


@dataclass
class CacheConfig:
    capacity: int = 50


@dataclass
class CategoryConfig:
    """One memo category and where its units live."""

    name: str
    directory: str = ""
    use_todo_list: bool = False
    template: str | None = None
    order: SortOrder | None = None


@dataclass
class MemologConfig:
    """Top-level memolog configuration."""

    trash: TrashConfig = field(default_factory=TrashConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    categories: list[CategoryConfig] = field(default_factory=list)
    root_dir: Path = _DEFAULT_ROOT
    default_category: str = "work"
    order: SortOrder = "asc"
    memo_template: str = DEFAULT_MEMO_TEMPLATE
    path_format: str = DEFAULT_PATH_FORMAT
    log_level: str = "INFO"

    def category(self, name: str) -> CategoryConfig:
        """Settings for a category; unknown names get one built from the defaults."""
        for cat in self.categories:
            if cat.name == name:
                return cat
        return CategoryConfig(name=name, directory=name)

    def template_for(self, name: str) -> str:
        return self.category(name).template or self.memo_template

    def order_for(self, name: str) -> SortOrder:
        return self.category(name).order or self.order


def _load_categories(items: list[dict]) -> list[CategoryConfig]:
    categories = []
    for item in items:
        name = item["name"]
        categories.append(
            CategoryConfig(
                name=name,
                directory=item.get("directory", name),
                use_todo_list=bool(item.get("use_todo_list", False)),
                template=item.get("template"),
                order=item.get("order"),
            )
        )
    return categories


def load_config(config_path: Path | None = None) -> MemologConfig:
    """Load configuration from environment variables and optional memolog.toml.

    Priority: environment variables > memolog.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    else:
        # Search current dir and ~/.memolog/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".memolog" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text(encoding="utf-8"))
                break

    trash_data = file_data.get("trash", {})
    cache_data = file_data.get("cache", {})

    config = MemologConfig(
        trash=TrashConfig(
            enabled=_env_bool("MEMOLOG_TRASH_ENABLED", trash_data.get("enabled", True)),
            retention_days=int(
                os.getenv("MEMOLOG_TRASH_RETENTION_DAYS", trash_data.get("retention_days", 30))
            ),
        ),
        cache=CacheConfig(
            capacity=int(os.getenv("MEMOLOG_CACHE_CAPACITY", cache_data.get("capacity", 50))),
        ),
        categories=_load_categories(file_data.get("categories", [])),
        root_dir=Path(os.getenv("MEMOLOG_ROOT", file_data.get("root_dir", str(_DEFAULT_ROOT)))).expanduser(),
        default_category=os.getenv("MEMOLOG_DEFAULT_CATEGORY", file_data.get("default_category", "work")),
        order=os.getenv("MEMOLOG_ORDER", file_data.get("order", "asc")),
        memo_template=os.getenv("MEMOLOG_TEMPLATE", file_data.get("memo_template", DEFAULT_MEMO_TEMPLATE)),
        path_format=os.getenv("MEMOLOG_PATH_FORMAT", file_data.get("path_format", DEFAULT_PATH_FORMAT)),
        log_level=os.getenv("MEMOLOG_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
