"""
Search Index Manager.

Full-text search over item titles and plain-text content, backed by the
``items_fts`` FTS5 table. Triggers keep the index in step with row writes;
this module answers queries and rebuilds the index on demand.

Rebuild builds a fresh staging table in committed batches and swaps it in
with one short transaction, so the live index stays usable throughout and
an interrupted rebuild leaves it untouched.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import DateTime, bindparam, or_, select, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notestore.core.config_schema import SearchSchema
from notestore.core.database import translate_error
from notestore.core.logging import get_logger
from notestore.core.utils import utc_now
from notestore.domain.hierarchy import ItemType
from notestore.domain.plaintext import build_snippet, to_plaintext
from notestore.models.item import Item

logger = get_logger(__name__)

STAGING_TABLE = "items_fts_staging"

_FTS_QUERY = text(
    """
    SELECT items_fts.item_id AS item_id,
           bm25(items_fts) AS score,
           snippet(items_fts, -1, :open_marker, :close_marker, :ellipsis, :max_tokens) AS snippet
    FROM items_fts
    JOIN items ON items.id = items_fts.item_id
    WHERE items_fts MATCH :match
      AND items.deleted_at IS NULL
      AND items.type IN :types
    ORDER BY score
    LIMIT :limit
    """
).bindparams(bindparam("types", expanding=True))

_CREATE_STAGING = (
    f"CREATE VIRTUAL TABLE {STAGING_TABLE} USING fts5("
    "item_id UNINDEXED, title, content_plaintext, "
    "tokenize = 'unicode61 remove_diacritics 2')"
)

_STAGE_BATCH = text(
    """
    SELECT rowid AS row_key, id, title, content, content_type
    FROM items
    WHERE deleted_at IS NULL AND rowid > :after
    ORDER BY rowid
    LIMIT :batch_size
    """
)

_INSERT_STAGED = text(
    f"INSERT INTO {STAGING_TABLE}(item_id, title, content_plaintext) "
    "VALUES (:item_id, :title, :content_plaintext)"
)

_CLEAR_LIVE = text("DELETE FROM items_fts")

_SWAP_STATEMENTS = (
    text(
        f"""
        INSERT INTO items_fts(item_id, title, content_plaintext)
        SELECT s.item_id, s.title, s.content_plaintext
        FROM {STAGING_TABLE} AS s
        JOIN items ON items.id = s.item_id
        WHERE items.deleted_at IS NULL AND items.updated_at < :started
        """
    ).bindparams(bindparam("started", type_=DateTime)),
    # rows written while the rebuild ran are taken from source as they are now
    text(
        f"""
        INSERT INTO items_fts(item_id, title, content_plaintext)
        SELECT items.id, items.title, COALESCE(items.content_plaintext, '')
        FROM items
        WHERE items.deleted_at IS NULL
          AND (items.updated_at >= :started
               OR items.id NOT IN (SELECT item_id FROM {STAGING_TABLE}))
        """
    ).bindparams(bindparam("started", type_=DateTime)),
)


@dataclass(frozen=True)
class SearchHit:
    """One ranked match. Lower rank is better."""

    item_id: str
    rank: float
    snippet: str


def query_terms(query: str) -> list[str]:
    return [term.strip('"') for term in query.split() if term.strip('"')]


def build_match_query(query: str) -> str | None:
    """
    FTS5 MATCH expression for free text.

    Every word is quoted so operators in user input are literal; the last
    word is prefix-matched for search-as-you-type.

        >>> build_match_query('hello wor')
        '"hello" "wor"*'
    """
    terms = [term.replace('"', '""') for term in query.split()]
    if not terms:
        return None
    quoted = [f'"{term}"' for term in terms]
    quoted[-1] += "*"
    return " ".join(quoted)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SearchIndexManager:
    """Queries and rebuilds the full-text index."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: SearchSchema | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.config = config or SearchSchema()

    def _effective_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.config.default_limit
        return max(1, min(limit, self.config.max_limit))

    async def query(
        self,
        query: str,
        limit: int | None = None,
        types: Iterable[ItemType | str] | None = None,
    ) -> list[SearchHit]:
        """
        Ranked hits for free text. Deleted items never match.

        Falls back to a substring scan when the index cannot be queried.
        """
        match = build_match_query(query or "")
        if match is None:
            return []

        # None means every type; an empty filter matches nothing
        type_values = [ItemType(t).value for t in (ItemType if types is None else types)]
        if not type_values:
            return []
        limit = self._effective_limit(limit)
        snippet = self.config.snippet

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    _FTS_QUERY,
                    {
                        "match": match,
                        "types": type_values,
                        "limit": limit,
                        "open_marker": snippet.open_marker,
                        "close_marker": snippet.close_marker,
                        "ellipsis": snippet.ellipsis,
                        "max_tokens": snippet.max_tokens,
                    },
                )
                rows = result.mappings().all()
        except OperationalError as e:
            logger.warning(
                "Full-text query failed, using substring scan",
                extra={"source": "search", "query": query, "error": str(e.orig)},
            )
            return await self._fallback_query(query, limit, type_values)

        return [
            SearchHit(item_id=row["item_id"], rank=float(row["score"]), snippet=row["snippet"] or "")
            for row in rows
        ]

    async def _fallback_query(self, query: str, limit: int, type_values: list[str]) -> list[SearchHit]:
        terms = query_terms(query)
        pattern = f"%{_escape_like(' '.join(terms))}%"
        snippet = self.config.snippet
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Item.id, Item.title, Item.content_plaintext)
                    .where(
                        Item.deleted_at.is_(None),
                        Item.type.in_(type_values),
                        or_(
                            Item.title.like(pattern, escape="\\"),
                            Item.content_plaintext.like(pattern, escape="\\"),
                        ),
                    )
                    .order_by(Item.updated_at.desc())
                    .limit(limit)
                )
                rows = result.all()
        except SQLAlchemyError as e:
            raise translate_error(e, "search_items") from e

        hits = []
        for position, (item_id, title, plaintext) in enumerate(rows):
            source = plaintext if plaintext and any(
                t.casefold() in plaintext.casefold() for t in terms
            ) else title
            hits.append(
                SearchHit(
                    item_id=item_id,
                    rank=float(position),
                    snippet=build_snippet(
                        source or "",
                        terms,
                        open_marker=snippet.open_marker,
                        close_marker=snippet.close_marker,
                        ellipsis=snippet.ellipsis,
                        max_tokens=snippet.max_tokens,
                    ),
                )
            )
        return hits

    async def rebuild(
        self,
        batch_size: int | None = None,
        progress: Callable[[int], Any] | None = None,
    ) -> int:
        """
        Rebuild the index from source rows and swap it in.

        Each committed batch is a cancellation point. ``progress`` is called
        with the running row count after every batch. On any interruption the
        staging table is dropped and the live index is left as it was.

        Returns:
            Number of rows in the live index after the swap
        """
        batch_size = batch_size or self.config.rebuild_batch_size
        started = utc_now()
        staged = 0

        logger.info("Search index rebuild started", extra={"source": "search", "batch_size": batch_size})

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(text(f"DROP TABLE IF EXISTS {STAGING_TABLE}"))
                    await session.execute(text(_CREATE_STAGING))

            last_rowid = 0
            while True:
                async with self._session_factory() as session:
                    async with session.begin():
                        rows = (
                            await session.execute(
                                _STAGE_BATCH, {"after": last_rowid, "batch_size": batch_size}
                            )
                        ).all()
                        if not rows:
                            break
                        await session.execute(
                            _INSERT_STAGED,
                            [
                                {
                                    "item_id": row.id,
                                    "title": row.title,
                                    "content_plaintext": to_plaintext(row.content, row.content_type),
                                }
                                for row in rows
                            ],
                        )
                last_rowid = rows[-1].row_key
                staged += len(rows)
                if progress is not None:
                    progress(staged)
                await asyncio.sleep(0)

            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(_CLEAR_LIVE)
                    for statement in _SWAP_STATEMENTS:
                        await session.execute(statement, {"started": started})
                    await session.execute(text(f"DROP TABLE {STAGING_TABLE}"))
                    total = (await session.execute(text("SELECT count(*) FROM items_fts"))).scalar_one()
        except BaseException as e:
            logger.warning(
                "Search index rebuild interrupted",
                extra={"source": "search", "staged": staged, "error": repr(e)},
            )
            await self._drop_staging()
            if isinstance(e, SQLAlchemyError):
                raise translate_error(e, "rebuild_search_index") from e
            raise

        logger.info("Search index rebuilt", extra={"source": "search", "rows": total, "staged": staged})
        return total

    async def _drop_staging(self) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(text(f"DROP TABLE IF EXISTS {STAGING_TABLE}"))
        except SQLAlchemyError as e:
            logger.error(
                "Could not drop search staging table",
                extra={"source": "search", "error": str(e)},
            )

    async def staging_exists(self) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
                {"name": STAGING_TABLE},
            )
            return result.first() is not None
