"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML config file.
Unknown keys, missing keys and wrong types fail at load time with a clear
message instead of a KeyError deep inside the store.

Each top-level class corresponds to one file in config/settings/:
    ApplicationSchema  → application.yaml
    DatabaseSchema     → database.yaml
    LoggingSchema      → logging.yaml
    SearchSchema       → search.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class ApplicationSchema(_StrictBase):
    name: str = "notestore"
    version: str = "0.1.0"
    description: str = ""
    environment: str = "development"


# =============================================================================
# database.yaml
# =============================================================================


class RetrySchema(_StrictBase):
    attempts: int = Field(default=2, ge=1, le=5)
    backoff_min_seconds: float = Field(default=0.05, ge=0)
    backoff_max_seconds: float = Field(default=0.5, ge=0)


class DatabaseSchema(_StrictBase):
    path: str = "data/notes.db"
    echo: bool = False
    journal_mode: Literal["WAL", "DELETE", "TRUNCATE", "MEMORY"] = "WAL"
    busy_timeout_ms: int = Field(default=5000, ge=0)
    retry: RetrySchema = Field(default_factory=RetrySchema)


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool = True


class FileHandlerSchema(_StrictBase):
    enabled: bool = False
    path: str = "logs/system.jsonl"
    max_bytes: int = 10_485_760
    backup_count: int = 5


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema = Field(default_factory=ConsoleHandlerSchema)
    file: FileHandlerSchema = Field(default_factory=FileHandlerSchema)


class LoggingSchema(_StrictBase):
    level: str = "INFO"
    format: Literal["console", "json"] = "console"
    handlers: HandlersSchema = Field(default_factory=HandlersSchema)


# =============================================================================
# search.yaml
# =============================================================================


class SnippetSchema(_StrictBase):
    open_marker: str = "<mark>"
    close_marker: str = "</mark>"
    ellipsis: str = "..."
    max_tokens: int = Field(default=30, ge=1, le=64)


class SearchSchema(_StrictBase):
    default_limit: int = Field(default=50, ge=1)
    max_limit: int = Field(default=500, ge=1)
    rebuild_batch_size: int = Field(default=500, ge=1)
    snippet: SnippetSchema = Field(default_factory=SnippetSchema)
