"""Verification store layout and schema versions."""

from pathlib import Path

STORE_DIR = Path("ai") / "verification"
LEGACY_FILE = "results.json"
LEGACY_BACKUP_FILE = "results.json.bak"
INDEX_FILE = "index.json"

# Schema versions
STORE_VERSION = "1.0.0"
INDEX_VERSION = "2.0.0"


def get_store_dir(project_path: str) -> Path:
    return Path(project_path) / STORE_DIR


def get_legacy_path(project_path: str) -> Path:
    return get_store_dir(project_path) / LEGACY_FILE


def get_index_path(project_path: str) -> Path:
    return get_store_dir(project_path) / INDEX_FILE


def get_feature_dir(project_path: str, feature_id: str) -> Path:
    return get_store_dir(project_path) / feature_id


def format_run_number(run_number: int) -> str:
    """3-digit zero padded run number: 1 -> "001"."""
    return f"{run_number:03d}"
