"""Runtime settings read from the environment.

Sheet sources are declared in ``backend/config/sources.yaml``; a different
file can be selected with ``SHEET_SOURCES_FILE``.  Every other knob is a
plain environment variable with a default suited to a single-instance
deployment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from backend.domain import SheetSource

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_SOURCES_FILE = CONFIG_DIR / "sources.yaml"
BLOB_CACHE_DIRNAME = Path("cache") / "sheets"


def default_blob_cache_root() -> Path:
    """Blob cache location relative to the working directory of the process."""

    return Path.cwd() / BLOB_CACHE_DIRNAME


@dataclass(frozen=True)
class TrackerSettings:
    sources: tuple[SheetSource, ...]
    sheet_tab_name: str = "Data_Entry"
    refresh_interval_seconds: float = 30 * 60
    refresh_join_timeout_seconds: float = 60.0
    auto_refresh_invalidates: bool = True
    fetch_timeout_seconds: float = 30.0
    fetch_concurrency: int | None = None
    blob_cache_enabled: bool = True
    blob_cache_root: Path = field(default_factory=default_blob_cache_root)
    blob_cache_max_age_seconds: float | None = None
    weight_target_sum: float = 100.0
    warm_cache_on_startup: bool = False


def _get_bool_env(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_float_env(name: str, default: float | None) -> float | None:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return float(raw_value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw_value!r}") from exc


def _get_int_env(name: str, default: int | None) -> int | None:
    value = _get_float_env(name, None)
    if value is None:
        return default
    return int(value)


def load_sources(path: Path) -> tuple[SheetSource, ...]:
    """Read the ordered source list from a YAML document."""

    if not path.exists():
        raise RuntimeError(f"Sheet source file not found: {path}")
    with path.open("r", encoding="utf-8") as fp:
        document = yaml.safe_load(fp) or {}

    entries = document.get("sources") if isinstance(document, dict) else document
    if not isinstance(entries, list):
        raise RuntimeError(f"{path}: expected a list under 'sources'")

    sources: list[SheetSource] = []
    seen: set[str] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            raise RuntimeError(f"{path}: source entries must be mappings")
        package_id = str(entry.get("package_id") or "").strip()
        url = str(entry.get("url") or "").strip()
        if not package_id or not url:
            raise RuntimeError(f"{path}: every source needs package_id and url")
        if package_id in seen:
            raise RuntimeError(f"{path}: duplicate package_id {package_id!r}")
        seen.add(package_id)
        sources.append(
            SheetSource(
                package_id=package_id,
                package_name=str(entry.get("package_name") or package_id).strip(),
                url=url,
            )
        )
    return tuple(sources)


def load_settings() -> TrackerSettings:
    sources_file = os.getenv("SHEET_SOURCES_FILE")
    sources_path = Path(sources_file).expanduser() if sources_file else DEFAULT_SOURCES_FILE

    cache_root = os.getenv("BLOB_CACHE_ROOT")
    return TrackerSettings(
        sources=load_sources(sources_path),
        sheet_tab_name=os.getenv("SHEET_TAB_NAME") or "Data_Entry",
        refresh_interval_seconds=_get_float_env("REFRESH_INTERVAL_SECONDS", 30 * 60),
        refresh_join_timeout_seconds=_get_float_env("REFRESH_JOIN_TIMEOUT_SECONDS", 60.0),
        auto_refresh_invalidates=_get_bool_env("AUTO_REFRESH_INVALIDATES", True),
        fetch_timeout_seconds=_get_float_env("FETCH_TIMEOUT_SECONDS", 30.0),
        fetch_concurrency=_get_int_env("FETCH_CONCURRENCY", None),
        blob_cache_enabled=_get_bool_env("BLOB_CACHE_ENABLED", True),
        blob_cache_root=Path(cache_root).expanduser().resolve() if cache_root else default_blob_cache_root(),
        blob_cache_max_age_seconds=_get_float_env("BLOB_CACHE_MAX_AGE_SECONDS", None),
        weight_target_sum=_get_float_env("WEIGHT_TARGET_SUM", 100.0),
        warm_cache_on_startup=_get_bool_env("WARM_CACHE_ON_STARTUP", False),
    )


@lru_cache(maxsize=1)
def get_settings() -> TrackerSettings:
    """Return process-wide settings, loaded once."""

    return load_settings()
