"""
Settings Service.

JSON-valued key-value settings with a versioned export/import envelope.
Bound to one session; the caller owns the transaction, so set_many and
import either apply completely or not at all.
"""

import json
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from notestore.core.exceptions import ValidationError
from notestore.core.utils import dumps_json, utc_now
from notestore.events.schemas import SettingsChanged
from notestore.repositories.setting import SettingRepository
from notestore.schemas.settings import SETTINGS_EXPORT_VERSION, SettingsExport
from notestore.services.base import BaseService

MAX_KEY_LENGTH = 255


class SettingsService(BaseService):
    """Service for settings business logic."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = SettingRepository(session)

    def _validate_key(self, key: str) -> None:
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Setting key must be a non-empty string", details={"key": key})
        self._validate_string_length(key, "key", max_length=MAX_KEY_LENGTH)

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return dumps_json(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Setting {key!r} is not JSON-serializable",
                details={"key": key, "error": str(e)},
            ) from e

    def _decode(self, key: str, raw: str, fallback: Any) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            self._logger.warning(
                "Corrupt setting value",
                extra={"source": "settings", "key": key, "error": str(e)},
            )
            return fallback

    async def get(self, key: str, default: Any = None) -> Any:
        """Stored value for ``key``, or ``default`` when absent or unreadable."""
        raw = await self.repo.get_raw(key)
        if raw is None:
            return default
        return self._decode(key, raw, default)

    async def set(self, key: str, value: Any) -> None:
        self._validate_key(key)
        encoded = self._encode(key, value)
        await self._execute_db_operation("set_setting", self.repo.upsert(key, encoded))
        self._queue_event(SettingsChanged, {"keys": [key]})
        self._log_debug("Setting stored", key=key)

    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns False when it did not exist."""
        removed = await self._execute_db_operation("delete_setting", self.repo.delete(key))
        if removed:
            self._queue_event(SettingsChanged, {"keys": [key]})
        return removed

    async def get_many(self, keys: Iterable[str] | Mapping[str, Any]) -> dict[str, Any]:
        """
        Values for several keys.

        Given a mapping, its values are the defaults and every key appears in
        the result. Given a plain list, absent keys are left out.
        """
        defaults = dict(keys) if isinstance(keys, Mapping) else None
        wanted = list(defaults) if defaults is not None else list(keys)
        raw = await self.repo.get_many_raw(wanted)

        result: dict[str, Any] = {}
        for key in wanted:
            fallback = defaults.get(key) if defaults is not None else None
            if key in raw:
                result[key] = self._decode(key, raw[key], fallback)
            elif defaults is not None:
                result[key] = fallback
        return result

    async def set_many(self, values: Mapping[str, Any]) -> None:
        """Store several values; encoding is checked for all before any write."""
        encoded = {}
        for key, value in values.items():
            self._validate_key(key)
            encoded[key] = self._encode(key, value)

        for key, raw in encoded.items():
            await self._execute_db_operation("set_settings", self.repo.upsert(key, raw))
        if encoded:
            self._queue_event(SettingsChanged, {"keys": sorted(encoded)})
        self._log_operation("Settings stored", count=len(encoded))

    async def get_all(self) -> dict[str, Any]:
        """Every setting; an unreadable value is returned as its raw text."""
        raw = await self.repo.all_raw()
        return {key: self._decode(key, value, value) for key, value in raw.items()}

    async def export_settings(self, app_version: str | None = None) -> SettingsExport:
        return SettingsExport(
            version=SETTINGS_EXPORT_VERSION,
            exported_at=utc_now(),
            app_version=app_version,
            settings=await self.get_all(),
        )

    @staticmethod
    def parse_export(document: str | bytes | Mapping[str, Any] | SettingsExport) -> SettingsExport:
        """
        Validate an export envelope.

        Raises:
            ValidationError: For malformed JSON, a bad shape or an unsupported version
        """
        if isinstance(document, SettingsExport):
            envelope = document
        else:
            try:
                if isinstance(document, (str, bytes)):
                    envelope = SettingsExport.model_validate_json(document)
                else:
                    envelope = SettingsExport.model_validate(dict(document))
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid settings export",
                    details={"errors": e.errors(include_url=False, include_context=False)},
                ) from e

        if envelope.version != SETTINGS_EXPORT_VERSION:
            raise ValidationError(
                f"Unsupported settings export version: {envelope.version}",
                details={"version": envelope.version, "supported": [SETTINGS_EXPORT_VERSION]},
            )
        return envelope

    async def import_settings(
        self,
        document: str | bytes | Mapping[str, Any] | SettingsExport,
    ) -> int:
        """Apply an export envelope. Returns the number of keys written."""
        envelope = self.parse_export(document)
        await self.set_many(envelope.settings)
        self._log_operation("Settings imported", count=len(envelope.settings))
        return len(envelope.settings)
