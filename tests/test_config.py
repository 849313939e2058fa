import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.config import DEFAULT_SOURCES_FILE, TrackerSettings, load_settings, load_sources


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "sources.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_bundled_sources_file_loads():
    sources = load_sources(DEFAULT_SOURCES_FILE)

    assert sources
    assert all(source.url.startswith("https://") for source in sources)


def test_load_sources_keeps_declaration_order(tmp_path):
    path = _write(
        tmp_path,
        """
sources:
  - package_id: PKG-B
    url: https://sheets.test/b.xlsx
  - package_id: PKG-A
    package_name: Package A
    url: https://sheets.test/a.xlsx
""",
    )

    sources = load_sources(path)

    assert [source.package_id for source in sources] == ["PKG-B", "PKG-A"]
    assert sources[0].package_name == "PKG-B"
    assert sources[1].package_name == "Package A"


@pytest.mark.parametrize(
    "text",
    [
        "sources: {}\n",
        "sources:\n  - package_id: PKG-A\n",
        "sources:\n  - package_id: A\n    url: u1\n  - package_id: A\n    url: u2\n",
    ],
)
def test_load_sources_rejects_invalid_documents(tmp_path, text):
    with pytest.raises(RuntimeError):
        load_sources(_write(tmp_path, text))


def test_load_sources_requires_existing_file(tmp_path):
    with pytest.raises(RuntimeError):
        load_sources(tmp_path / "missing.yaml")


def test_load_settings_reads_environment(tmp_path, monkeypatch):
    path = _write(tmp_path, "sources:\n  - package_id: PKG-A\n    url: https://sheets.test/a.xlsx\n")
    monkeypatch.setenv("SHEET_SOURCES_FILE", str(path))
    monkeypatch.setenv("REFRESH_INTERVAL_SECONDS", "120")
    monkeypatch.setenv("FETCH_CONCURRENCY", "2")
    monkeypatch.setenv("BLOB_CACHE_ENABLED", "false")
    monkeypatch.setenv("BLOB_CACHE_ROOT", str(tmp_path / "blobs"))
    monkeypatch.setenv("WEIGHT_TARGET_SUM", "1")
    monkeypatch.delenv("SHEET_TAB_NAME", raising=False)
    monkeypatch.delenv("AUTO_REFRESH_INVALIDATES", raising=False)

    settings = load_settings()

    assert [source.package_id for source in settings.sources] == ["PKG-A"]
    assert settings.refresh_interval_seconds == 120.0
    assert settings.fetch_concurrency == 2
    assert settings.blob_cache_enabled is False
    assert settings.blob_cache_root == (tmp_path / "blobs").resolve()
    assert settings.weight_target_sum == 1.0
    assert settings.sheet_tab_name == "Data_Entry"
    assert settings.auto_refresh_invalidates is True


def test_load_settings_rejects_non_numeric_values(tmp_path, monkeypatch):
    path = _write(tmp_path, "sources:\n  - package_id: PKG-A\n    url: https://sheets.test/a.xlsx\n")
    monkeypatch.setenv("SHEET_SOURCES_FILE", str(path))
    monkeypatch.setenv("REFRESH_INTERVAL_SECONDS", "soon")

    with pytest.raises(RuntimeError):
        load_settings()


def test_blob_cache_root_defaults_to_working_directory(tmp_path, monkeypatch):
    path = _write(tmp_path, "sources:\n  - package_id: PKG-A\n    url: https://sheets.test/a.xlsx\n")
    monkeypatch.setenv("SHEET_SOURCES_FILE", str(path))
    monkeypatch.delenv("BLOB_CACHE_ROOT", raising=False)
    monkeypatch.chdir(tmp_path)

    settings = load_settings()

    assert settings.blob_cache_root.resolve() == (tmp_path / "cache" / "sheets").resolve()
    assert TrackerSettings(sources=settings.sources).blob_cache_root.resolve() == (tmp_path / "cache" / "sheets").resolve()
