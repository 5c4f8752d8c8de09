"""
Unit Tests for Settings Service.

Repository calls are mocked; these tests cover encoding, decoding and
export envelope validation.
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from notestore.core.exceptions import ValidationError
from notestore.schemas.settings import SettingsExport
from notestore.services.settings import SettingsService


@pytest.fixture
def service(mock_db_session):
    service = SettingsService(mock_db_session)
    service.repo = AsyncMock()
    return service


class TestGetAndSet:
    """Tests for get/set with a mocked repository."""

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, service):
        service.repo.get_raw.return_value = '{"size":14}'

        assert await service.get("editor") == {"size": 14}

    @pytest.mark.asyncio
    async def test_get_missing_returns_default(self, service):
        service.repo.get_raw.return_value = None

        assert await service.get("theme", "light") == "light"

    @pytest.mark.asyncio
    async def test_get_corrupt_value_returns_default(self, service):
        service.repo.get_raw.return_value = "{not json"

        with patch.object(service, "_logger") as mock_logger:
            assert await service.get("theme", "light") == "light"
            mock_logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_set_encodes_compact_json(self, service):
        await service.set("theme", {"mode": "dark"})

        service.repo.upsert.assert_awaited_once_with("theme", '{"mode":"dark"}')

    @pytest.mark.asyncio
    async def test_set_queues_change_event(self, service):
        await service.set("theme", "dark")

        (event,) = service.pending_events
        assert event.event_type == "settings.values.changed"
        assert event.payload == {"keys": ["theme"]}
        assert event.correlation_id == service.correlation_id

    @pytest.mark.asyncio
    async def test_delete_missing_key_queues_nothing(self, service):
        service.repo.delete.return_value = False

        assert await service.delete("absent") is False
        assert service.pending_events == []

    @pytest.mark.asyncio
    async def test_set_rejects_unserializable(self, service):
        with pytest.raises(ValidationError):
            await service.set("when", datetime(2024, 1, 1))

        service.repo.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_rejects_nan(self, service):
        with pytest.raises(ValidationError):
            await service.set("ratio", float("nan"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", "   ", None, "k" * 256])
    async def test_set_rejects_bad_keys(self, service, key):
        with pytest.raises(ValidationError):
            await service.set(key, 1)

    @pytest.mark.asyncio
    async def test_set_many_validates_all_before_writing(self, service):
        with pytest.raises(ValidationError):
            await service.set_many({"a": 1, "b": object()})

        service.repo.upsert.assert_not_called()


class TestGetMany:
    """Tests for get_many."""

    @pytest.mark.asyncio
    async def test_list_omits_missing(self, service):
        service.repo.get_many_raw.return_value = {"a": "1"}

        assert await service.get_many(["a", "b"]) == {"a": 1}

    @pytest.mark.asyncio
    async def test_mapping_supplies_defaults(self, service):
        service.repo.get_many_raw.return_value = {"a": "1"}

        assert await service.get_many({"a": 0, "b": "x"}) == {"a": 1, "b": "x"}

    @pytest.mark.asyncio
    async def test_get_all_keeps_corrupt_raw(self, service):
        service.repo.all_raw.return_value = {"ok": "true", "bad": "{oops"}

        assert await service.get_all() == {"ok": True, "bad": "{oops"}


class TestParseExport:
    """Tests for envelope validation."""

    def test_accepts_camel_case_json(self):
        document = json.dumps({
            "version": 1,
            "exportedAt": "2024-05-01T10:00:00Z",
            "settings": {"theme": "dark"},
        })

        envelope = SettingsService.parse_export(document)

        assert envelope.settings == {"theme": "dark"}
        assert envelope.app_version is None

    def test_accepts_mapping(self):
        envelope = SettingsService.parse_export({
            "version": 1,
            "exportedAt": "2024-05-01T10:00:00",
            "appVersion": "0.1.0",
            "settings": {},
        })

        assert envelope.app_version == "0.1.0"

    def test_passes_envelope_through(self):
        envelope = SettingsExport(version=1, exported_at=datetime(2024, 1, 1), settings={})

        assert SettingsService.parse_export(envelope) is envelope

    def test_wrong_version(self):
        with pytest.raises(ValidationError) as exc_info:
            SettingsService.parse_export({"version": 2, "exportedAt": "2024-05-01T10:00:00", "settings": {}})

        assert exc_info.value.details == {"version": 2, "supported": [1]}

    @pytest.mark.parametrize(
        "document",
        [
            {"exportedAt": "2024-05-01T10:00:00", "settings": {}},
            {"version": 1, "settings": {}},
            {"version": 1, "exportedAt": "2024-05-01T10:00:00"},
            {"version": 1, "exportedAt": "2024-05-01T10:00:00", "settings": []},
            "not json at all",
        ],
    )
    def test_malformed(self, document):
        with pytest.raises(ValidationError):
            SettingsService.parse_export(document)

    def test_export_round_trips_through_json(self):
        envelope = SettingsExport(
            version=1,
            exported_at=datetime(2024, 1, 2, 3, 4, 5),
            app_version="0.1.0",
            settings={"a": [1, 2]},
        )

        document = json.loads(envelope.to_json())

        assert set(document) == {"version", "exportedAt", "appVersion", "settings"}
        assert SettingsService.parse_export(document).settings == {"a": [1, 2]}
