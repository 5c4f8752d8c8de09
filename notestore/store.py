"""
Note Store.

Entry point for the persistence layer. Opens (and provisions) the SQLite
file, runs every operation as one transaction with a single retry for
transient lock contention, and returns a StoreResult instead of raising.
Events are published to ``store.events`` after the transaction commits.

Usage:
    from notestore import NoteStore, ItemCreate, ItemType

    async with await NoteStore.open("notes.db") as store:
        book = (await store.create_item(ItemCreate(type=ItemType.BOOK, title="A"))).unwrap()
        await store.settings.set("theme", "dark")
"""

import json
import os
from collections.abc import Awaitable, Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from notestore.core.config import AppConfig, get_app_config, resolve_database_path
from notestore.core.database import MEMORY, create_engine, create_session_factory, unit_of_work
from notestore.core.exceptions import (
    ConflictError,
    NotFoundError,
    StorageError,
    StoreError,
    ValidationError,
)
from notestore.core.logging import get_logger, operation_context
from notestore.core.resilience import transient_retry
from notestore.domain.hierarchy import ItemType
from notestore.domain.tree import TreeMaterializer
from notestore.events.publishers import ItemEventBus
from notestore.events.schemas import EventEnvelope, SearchIndexRebuilt
from notestore.migrations.provisioner import ProvisionReport, SchemaProvisioner
from notestore.repositories.item import ItemRepository
from notestore.repositories.setting import SettingRepository
from notestore.schemas.base import StoreResult
from notestore.schemas.item import (
    HIERARCHY_FIELDS,
    ItemCreate,
    ItemRead,
    ItemUpdate,
    SearchResult,
    StorageInfo,
    TreeEntry,
)
from notestore.schemas.settings import SettingsExport
from notestore.services.item import ItemService
from notestore.services.search import SearchIndexManager
from notestore.services.settings import SettingsService

logger = get_logger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

_CLIENT_ERRORS = (ValidationError, NotFoundError, ConflictError)


def _coerce(model: type[ModelT], params: ModelT | Mapping[str, Any]) -> ModelT:
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(dict(params))
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__} parameters",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def _read(items: Iterable[Any]) -> list[ItemRead]:
    return [ItemRead.model_validate(item) for item in items]


class NoteStore:
    """Repository API over one SQLite database."""

    def __init__(
        self,
        engine: AsyncEngine,
        database_path: str,
        config: AppConfig,
    ) -> None:
        self._engine = engine
        self._session_factory: async_sessionmaker[AsyncSession] = create_session_factory(engine)
        self.database_path = database_path
        self.config = config
        self.events = ItemEventBus()
        self.search = SearchIndexManager(self._session_factory, config.search)
        self.settings = SettingsStore(self)
        self.provision_report: ProvisionReport | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        database_path: str | Path | None = None,
        *,
        config: AppConfig | None = None,
        provision: bool = True,
    ) -> "NoteStore":
        """
        Open a store, provisioning the schema first.

        Raises:
            SchemaError: If provisioning fails; the store is not usable
        """
        config = config or get_app_config()
        path = resolve_database_path(database_path, config)
        engine = create_engine(path, config.database)
        store = cls(engine, path, config)

        if provision:
            try:
                store.provision_report = await SchemaProvisioner(engine).provision()
            except BaseException:
                await engine.dispose()
                raise

        logger.info("Store opened", extra={"source": "store", "path": path})
        return store

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.events.clear()
        await self._engine.dispose()
        logger.info("Store closed", extra={"source": "store", "path": self.database_path})

    async def __aenter__(self) -> "NoteStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _transaction(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[tuple[T, list[EventEnvelope]]]],
    ) -> T:
        """Run ``work`` in one transaction, retrying transient failures once."""
        async for attempt in transient_retry(self.config.database.retry):
            with attempt:
                async with unit_of_work(self._session_factory, operation) as session:
                    result, events = await work(session)
        await self.events.publish_all(events)
        return result

    async def _items(self, operation: str, work: Callable[[ItemService], Awaitable[T]]) -> T:
        async def run(session: AsyncSession) -> tuple[T, list[EventEnvelope]]:
            service = ItemService(session)
            return await work(service), service.pending_events

        return await self._transaction(operation, run)

    async def _result(self, operation: str, call: Callable[[], Awaitable[T]]) -> StoreResult:
        try:
            with operation_context(operation):
                data = await call()
        except StoreError as e:
            log = logger.warning if isinstance(e, _CLIENT_ERRORS) else logger.error
            log(
                f"{operation} failed",
                extra={"source": "store", "code": e.code, "error": e.message, "details": e.details},
            )
            return StoreResult.failure(e, operation)
        return StoreResult.ok(data, operation)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all_items(self, include_deleted: bool = False) -> StoreResult:
        """Every live item (and deleted ones on request), grouped by parent in key order."""

        async def call() -> list[ItemRead]:
            return _read(await self._items("get_all_items", lambda s: s.list_items(include_deleted)))

        return await self._result("get_all_items", call)

    async def get_item(self, item_id: str) -> StoreResult:
        async def call() -> ItemRead:
            item = await self._items("get_item", lambda s: s.get_item(item_id))
            return ItemRead.model_validate(item)

        return await self._result("get_item", call)

    async def get_trash(self) -> StoreResult:
        async def call() -> list[ItemRead]:
            return _read(await self._items("get_trash", lambda s: s.list_trash()))

        return await self._result("get_trash", call)

    async def get_tree(self) -> StoreResult:
        """Nested live tree, each level in visual order."""

        async def call() -> list[TreeEntry]:
            return await self._items("get_tree", lambda s: s.get_tree())

        return await self._result("get_tree", call)

    async def tree_materializer(self) -> TreeMaterializer:
        """A materialized tree kept current by this store's events."""

        async def load() -> list[ItemRead]:
            return (await self.get_all_items()).unwrap()

        materializer = TreeMaterializer(loader=load, item_factory=ItemRead.model_validate)
        await materializer.refresh()
        materializer.attach(self.events)
        return materializer

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_item(self, params: ItemCreate | Mapping[str, Any]) -> StoreResult:
        async def call() -> ItemRead:
            data = _coerce(ItemCreate, params)
            item = await self._items("create_item", lambda s: s.create_item(data))
            return ItemRead.model_validate(item)

        return await self._result("create_item", call)

    async def update_item(self, item_id: str, patch: ItemUpdate | Mapping[str, Any]) -> StoreResult:
        """Patch title, content or presentation. Hierarchy fields are refused."""

        async def call() -> ItemRead:
            if isinstance(patch, Mapping):
                blocked = sorted(HIERARCHY_FIELDS & patch.keys())
                if blocked:
                    raise ValidationError(
                        "type, parent_id and sort_order change only through move_item or reorder_item",
                        details={"fields": blocked},
                    )
            data = _coerce(ItemUpdate, patch)
            item = await self._items("update_item", lambda s: s.update_item(item_id, data))
            return ItemRead.model_validate(item)

        return await self._result("update_item", call)

    async def move_item(
        self,
        item_id: str,
        new_parent_id: str | None,
        index: int | None = None,
    ) -> StoreResult:
        async def call() -> ItemRead:
            item = await self._items("move_item", lambda s: s.move_item(item_id, new_parent_id, index))
            return ItemRead.model_validate(item)

        return await self._result("move_item", call)

    async def reorder_item(self, item_id: str, index: int, parent_id: str | None) -> StoreResult:
        async def call() -> ItemRead:
            item = await self._items("reorder_item", lambda s: s.reorder_item(item_id, index, parent_id))
            return ItemRead.model_validate(item)

        return await self._result("reorder_item", call)

    async def delete_item(self, item_id: str) -> StoreResult:
        """Soft delete; ``data`` lists every id deleted by the cascade."""

        async def call() -> list[str]:
            return await self._items("delete_item", lambda s: s.delete_item(item_id))

        return await self._result("delete_item", call)

    async def restore_item(self, item_id: str) -> StoreResult:
        async def call() -> ItemRead:
            item = await self._items("restore_item", lambda s: s.restore_item(item_id))
            return ItemRead.model_validate(item)

        return await self._result("restore_item", call)

    async def purge_item(self, item_id: str) -> StoreResult:
        async def call() -> list[str]:
            return await self._items("purge_item", lambda s: s.purge_item(item_id))

        return await self._result("purge_item", call)

    async def empty_trash(self) -> StoreResult:
        """Purge every trash entry; ``data`` is the number of rows removed."""

        async def call() -> int:
            return len(await self._items("empty_trash", lambda s: s.empty_trash()))

        return await self._result("empty_trash", call)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_items(
        self,
        query: str,
        types: Iterable[ItemType | str] | None = None,
        limit: int | None = None,
    ) -> StoreResult:
        """Ranked matches with highlighted snippets, best first."""

        async def call() -> list[SearchResult]:
            hits = await self.search.query(query, limit=limit, types=types)
            if not hits:
                return []

            async def hydrate(session: AsyncSession) -> tuple[list[SearchResult], list[EventEnvelope]]:
                items = await ItemRepository(session).get_by_ids([hit.item_id for hit in hits])
                by_id = {item.id: item for item in items if item.deleted_at is None}
                return [
                    SearchResult(
                        item=ItemRead.model_validate(by_id[hit.item_id]),
                        snippet=hit.snippet,
                        rank=hit.rank,
                    )
                    for hit in hits
                    if hit.item_id in by_id
                ], []

            return await self._transaction("search_items", hydrate)

        return await self._result("search_items", call)

    async def rebuild_search_index(
        self,
        batch_size: int | None = None,
        progress: Callable[[int], Any] | None = None,
    ) -> StoreResult:
        """Rebuild and swap the full-text index; ``data`` is the indexed row count."""

        async def call() -> int:
            total = await self.search.rebuild(batch_size=batch_size, progress=progress)
            await self.events.publish(SearchIndexRebuilt(payload={"rows": total}))
            return total

        return await self._result("rebuild_search_index", call)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def get_storage_info(self) -> StoreResult:
        async def call() -> StorageInfo:
            async def count(session: AsyncSession) -> tuple[StorageInfo, list[EventEnvelope]]:
                items = ItemRepository(session)
                by_type = await items.count_by_type()
                version = (await session.execute(text("PRAGMA user_version"))).scalar() or 0
                return StorageInfo(
                    notes=by_type.get(ItemType.NOTE.value, 0),
                    books=by_type.get(ItemType.BOOK.value, 0),
                    sections=by_type.get(ItemType.SECTION.value, 0),
                    deleted=await items.count_deleted(),
                    settings=await SettingRepository(session).count(),
                    database_path=self.database_path,
                    database_size_bytes=self._database_size(),
                    schema_version=version,
                ), []

            return await self._transaction("get_storage_info", count)

        return await self._result("get_storage_info", call)

    def _database_size(self) -> int | None:
        if self.database_path == MEMORY or not os.path.exists(self.database_path):
            return None
        return os.path.getsize(self.database_path)


class SettingsStore:
    """
    Settings API bound to a store.

    Every call is one transaction and returns a StoreResult, like the item
    operations on NoteStore.
    """

    def __init__(self, store: NoteStore) -> None:
        self._store = store

    async def _run(self, operation: str, work: Callable[[SettingsService], Awaitable[T]]) -> StoreResult:
        async def run(session: AsyncSession) -> tuple[T, list[EventEnvelope]]:
            service = SettingsService(session)
            return await work(service), service.pending_events

        return await self._store._result(operation, lambda: self._store._transaction(operation, run))

    async def get(self, key: str, default: Any = None) -> StoreResult:
        return await self._run("get_setting", lambda s: s.get(key, default))

    async def set(self, key: str, value: Any) -> StoreResult:
        return await self._run("set_setting", lambda s: s.set(key, value))

    async def delete(self, key: str) -> StoreResult:
        """``data`` is False when the key did not exist."""
        return await self._run("delete_setting", lambda s: s.delete(key))

    async def get_many(self, keys: Iterable[str] | Mapping[str, Any]) -> StoreResult:
        return await self._run("get_settings", lambda s: s.get_many(keys))

    async def set_many(self, values: Mapping[str, Any]) -> StoreResult:
        """All values are written in one transaction or none are."""
        return await self._run("set_settings", lambda s: s.set_many(values))

    async def get_all(self) -> StoreResult:
        return await self._run("get_all_settings", lambda s: s.get_all())

    async def export_settings(self, path: str | Path | None = None) -> StoreResult:
        """Build the export envelope, writing it to ``path`` when given."""
        app_version = self._store.config.application.version

        async def export(service: SettingsService) -> SettingsExport:
            envelope = await service.export_settings(app_version)
            if path is not None:
                _write_export(Path(path), envelope)
            return envelope

        return await self._run("export_settings", export)

    async def import_settings(
        self,
        source: str | Path | Mapping[str, Any] | SettingsExport,
    ) -> StoreResult:
        """
        Apply an export envelope from a file path, JSON text or mapping.

        The envelope is validated before anything is written; ``data`` is the
        number of keys applied.
        """

        async def call() -> int:
            envelope = SettingsService.parse_export(_read_export(source))

            async def apply(session: AsyncSession) -> tuple[int, list[EventEnvelope]]:
                service = SettingsService(session)
                return await service.import_settings(envelope), service.pending_events

            return await self._store._transaction("import_settings", apply)

        return await self._store._result("import_settings", call)


def _write_export(path: Path, envelope: SettingsExport) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(envelope.to_json(), encoding="utf-8")
    except OSError as e:
        raise StorageError(
            f"Cannot write settings export: {path}",
            details={"path": str(path), "error": str(e)},
        ) from e
    logger.info(
        "Settings exported",
        extra={"source": "settings", "path": str(path), "count": len(envelope.settings)},
    )


def _read_export(source: str | Path | Mapping[str, Any] | SettingsExport) -> Any:
    """Load an export document from a path or JSON text; mappings pass through."""
    if isinstance(source, Path) or (
        isinstance(source, str) and not source.lstrip().startswith("{")
    ):
        try:
            source = Path(source).read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError(
                f"Cannot read settings export: {source}",
                details={"path": str(source), "error": str(e)},
            ) from e

    if isinstance(source, str):
        try:
            return json.loads(source)
        except json.JSONDecodeError as e:
            raise ValidationError(
                "Settings export is not valid JSON",
                details={"error": str(e)},
            ) from e
    return source
