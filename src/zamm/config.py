"""
zamm configuration

Settings are loaded from:
1. Environment variables (prefixed with ZAMM_)
2. The .zamm/.env file in the working directory

Key settings:
- ZAMM_STORAGE_PATH: storage directory (default: .zamm, or the directory named
  by "data-redirect" in .zamm/local-metadata.json)
- ZAMM_LOG_LEVEL: logging level for the CLI
- ZAMM_ANTHROPIC_API_KEY: enables LLM slug suggestions
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import StorageError

logger = logging.getLogger(__name__)

STORAGE_DIR_NAME = ".zamm"
LOCAL_METADATA_FILE = "local-metadata.json"


def resolve_storage_dir(working_dir: Path) -> Path:
    """Return the storage directory, following a data-redirect if one is set."""
    local_dir = working_dir / STORAGE_DIR_NAME
    metadata_path = local_dir / LOCAL_METADATA_FILE
    if not metadata_path.exists():
        return local_dir

    try:
        metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise StorageError(
            f"Failed to read {LOCAL_METADATA_FILE}", {"path": str(metadata_path)}
        ) from exc

    redirect = metadata.get("data-redirect") if isinstance(metadata, dict) else None
    if not redirect:
        return local_dir

    redirect_path = Path(redirect).expanduser()
    if not redirect_path.is_absolute():
        redirect_path = working_dir / redirect_path
    if not redirect_path.exists():
        raise StorageError(
            "data-redirect directory does not exist", {"path": str(redirect_path)}
        )
    logger.debug("Storage redirected to %s", redirect_path)
    return redirect_path


def write_data_redirect(working_dir: Path, target: Path) -> Path:
    """Point ``working_dir`` at another storage directory. Returns the metadata file."""
    target = Path(target).expanduser()
    if not target.is_absolute():
        target = working_dir / target
    if not target.is_dir():
        raise StorageError("Target directory does not exist", {"path": str(target)})

    local_dir = working_dir / STORAGE_DIR_NAME
    metadata_path = local_dir / LOCAL_METADATA_FILE
    payload = {"data-redirect": str(target.resolve())}
    try:
        local_dir.mkdir(parents=True, exist_ok=True)
        metadata_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as exc:
        raise StorageError(
            f"Failed to write {LOCAL_METADATA_FILE}", {"path": str(metadata_path)}
        ) from exc
    logger.info("Storage for %s redirected to %s", working_dir, target)
    return metadata_path


class Settings(BaseSettings):
    """zamm configuration settings."""

    storage_path: Path = Field(
        default_factory=lambda: resolve_storage_dir(Path.cwd()),
        validate_default=True,
        description="Directory holding node files, link tables and metadata",
    )
    docs_dir: str = Field(
        default="documentation",
        description="Top-level directory (relative to the project root) for organized nodes",
    )
    log_level: str = "INFO"

    ungrouped_label: str = "Children"
    implementations_label: str = "Implementations"
    write_child_links: bool = True

    # LLM slug suggestion (optional)
    anthropic_api_key: Optional[str] = None
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    slug_model: str = "claude-3-haiku-20240307"

    model_config = SettingsConfigDict(
        env_prefix="ZAMM_",
        env_file=Path(STORAGE_DIR_NAME) / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("storage_path", mode="before")
    @classmethod
    def _normalize_storage_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("storage_path cannot be empty")
        return Path(value).expanduser().resolve()

    @field_validator("docs_dir")
    @classmethod
    def _check_docs_dir(cls, value: str) -> str:
        cleaned = value.strip().strip("/")
        if not cleaned or ".." in cleaned.split("/"):
            raise ValueError("docs_dir must be a relative directory name")
        return cleaned

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def project_root(self) -> Path:
        """Directory that organized paths and node-files.csv entries are relative to."""
        return self.storage_path.parent

    @property
    def is_llm_configured(self) -> bool:
        return bool(self.anthropic_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache settings."""
    return Settings()


def reload_settings() -> Settings:
    """Clear cached settings (useful for tests) and reload."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "resolve_storage_dir",
    "write_data_redirect",
]
