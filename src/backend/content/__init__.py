"""
Content store access (Notion).

Provides:
- A small Notion REST client and property flattening (notion.py)
- Collection definitions and published-item listing (collections.py)
"""

from .notion import NotionClient, NotionError, extract_property_value
from .collections import (
    MOODBOARD,
    STUDIOS,
    CollectionSpec,
    ContentItem,
    NotionContentSource,
)

__all__ = [
    "NotionClient",
    "NotionError",
    "extract_property_value",
    "MOODBOARD",
    "STUDIOS",
    "CollectionSpec",
    "ContentItem",
    "NotionContentSource",
]
