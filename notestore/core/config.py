"""
Configuration.

A project tree is marked by a ``.project_root`` file. Below it,
config/settings/ holds one YAML file per section:

    application.yaml   - name, version, environment
    database.yaml      - SQLite path, journal mode, busy timeout, retry policy
    logging.yaml       - level, format, console and file handlers
    search.yaml        - result limits, snippet markers, rebuild batch size

A missing file, or no project tree at all (the store embedded in another
program), means that section's schema defaults. NOTESTORE_DATABASE_PATH
and NOTESTORE_LOG_LEVEL override the files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from notestore.core.config_schema import (
    ApplicationSchema,
    DatabaseSchema,
    LoggingSchema,
    SearchSchema,
)

ROOT_MARKER = ".project_root"
SETTINGS_DIR = Path("config") / "settings"


def find_project_root() -> Path:
    """Walk up from the working directory to the nearest ROOT_MARKER."""
    here = Path.cwd()
    for candidate in (here, *here.parents):
        if (candidate / ROOT_MARKER).exists():
            return candidate
    raise RuntimeError(f"Project root not found: no {ROOT_MARKER} above {here}")


def load_yaml_config(filename: str, root: Path | None = None) -> dict[str, Any]:
    """Parsed contents of config/settings/<filename>; {} for an empty file."""
    path = (root or find_project_root()) / SETTINGS_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


class Settings(BaseSettings):
    """Environment overrides. None defers to the YAML files."""

    database_path: str | None = None
    log_level: str | None = None

    model_config = SettingsConfigDict(env_prefix="NOTESTORE_", case_sensitive=False, extra="ignore")


def _section(schema: type[BaseModel], filename: str, root: Path | None) -> Any:
    if root is None:
        return schema()
    try:
        raw = load_yaml_config(filename, root)
    except FileNotFoundError:
        return schema()
    try:
        return schema.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {filename}:\n{e}") from e


class AppConfig:
    """
    Validated view of the YAML sections.

    A section passed explicitly is used as is and its file is not read,
    which is how tests and embedding programs pin a configuration.
    """

    def __init__(
        self,
        root: Path | None = None,
        *,
        application: ApplicationSchema | None = None,
        database: DatabaseSchema | None = None,
        logging: LoggingSchema | None = None,
        search: SearchSchema | None = None,
    ) -> None:
        self.root = root
        self.application: ApplicationSchema = application or _section(
            ApplicationSchema, "application.yaml", root
        )
        self.database: DatabaseSchema = database or _section(DatabaseSchema, "database.yaml", root)
        self.logging: LoggingSchema = logging or _section(LoggingSchema, "logging.yaml", root)
        self.search: SearchSchema = search or _section(SearchSchema, "search.yaml", root)


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_app_config() -> AppConfig:
    """Process-wide configuration; schema defaults outside a project tree."""
    try:
        root: Path | None = find_project_root()
    except RuntimeError:
        root = None
    return AppConfig(root)


def resolve_database_path(explicit: str | Path | None = None, config: AppConfig | None = None) -> str:
    """
    Where the database lives.

    An explicit argument wins, then NOTESTORE_DATABASE_PATH, then
    database.yaml. A relative path from the YAML file is taken relative to
    the project root; ``:memory:`` is returned unchanged.
    """
    if explicit is not None:
        return str(explicit)
    from_env = get_settings().database_path
    if from_env:
        return from_env

    config = config or get_app_config()
    configured = config.database.path
    if configured == ":memory:" or config.root is None or Path(configured).is_absolute():
        return configured
    return str(config.root / configured)
