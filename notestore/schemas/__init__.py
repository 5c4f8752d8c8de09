# Pydantic schemas package
from notestore.schemas.base import ErrorDetail, ResultMetadata, StoreResult
from notestore.schemas.item import ItemCreate, ItemRead, ItemUpdate, SearchResult, StorageInfo, TreeEntry
from notestore.schemas.settings import SettingsExport

__all__ = [
    "ErrorDetail",
    "ItemCreate",
    "ItemRead",
    "ItemUpdate",
    "ResultMetadata",
    "SearchResult",
    "SettingsExport",
    "StorageInfo",
    "StoreResult",
    "TreeEntry",
]
