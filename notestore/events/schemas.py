"""
Event Schemas.

Envelope and item event types published by the store after a commit.

Naming convention for event_type: domain.entity.action (dot notation)

Payload shape for item events:
    items        - current snapshots (ItemRead dumps) of every touched item
    removed_ids  - ids whose rows no longer exist (purge)
"""

from uuid import uuid4

from pydantic import BaseModel, Field

from notestore.core.utils import utc_now


class EventEnvelope(BaseModel):
    """Base event envelope. All events inherit from this.

    Fields:
        event_id: Unique event identifier (auto-generated UUID)
        event_type: Domain event type in dot notation (e.g. items.item.created)
        event_version: Schema version for forward compatibility
        timestamp: ISO 8601 UTC timestamp
        source: Component that published the event
        correlation_id: Id shared by the events of one operation
        payload: Event-specific data
    """

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    event_version: int = 1
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    source: str = "store"
    correlation_id: str = Field(default_factory=lambda: str(uuid4()))
    payload: dict


class ItemCreated(EventEnvelope):
    """Published when an item is created."""

    event_type: str = "items.item.created"


class ItemUpdated(EventEnvelope):
    """Published when title, content or presentation changes."""

    event_type: str = "items.item.updated"


class ItemMoved(EventEnvelope):
    """Published when an item changes parent."""

    event_type: str = "items.item.moved"


class ItemReordered(EventEnvelope):
    """Published when an item changes position among its siblings."""

    event_type: str = "items.item.reordered"


class ItemDeleted(EventEnvelope):
    """Published when an item and its live subtree are soft-deleted."""

    event_type: str = "items.item.deleted"


class ItemRestored(EventEnvelope):
    """Published when a soft-deleted subtree comes back."""

    event_type: str = "items.item.restored"


class ItemPurged(EventEnvelope):
    """Published when rows are removed for good."""

    event_type: str = "items.item.purged"


class SearchIndexRebuilt(EventEnvelope):
    """Published after a search index rebuild swaps in."""

    event_type: str = "search.index.rebuilt"
    source: str = "search"


class SettingsChanged(EventEnvelope):
    """Published after settings are written, deleted or imported. Payload: keys."""

    event_type: str = "settings.values.changed"
    source: str = "settings"
