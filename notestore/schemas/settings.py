"""
Settings Schemas.

Export/import envelope for the settings table.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SETTINGS_EXPORT_VERSION = 1


class SettingsExport(BaseModel):
    """
    Portable settings document.

    Serialized with camelCase keys:
        {"version": 1, "exportedAt": "...", "appVersion": "...", "settings": {...}}
    """

    version: int
    exported_at: datetime = Field(alias="exportedAt")
    app_version: str | None = Field(default=None, alias="appVersion")
    settings: dict[str, Any]

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
