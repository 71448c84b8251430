"""
Published content items read from Notion databases.

Two collections back the site: the studio directory (map and list views) and
the moodboard gallery. Each is described by a CollectionSpec mapping output
field names to Notion property names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .notion import NotionClient, extract_property_value


@dataclass(frozen=True)
class ContentItem:
    """One published page: stable id, optional source image, display fields."""
    id: str
    image_url: Optional[str]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    fields: Mapping[str, str]  # output field -> Notion property name
    image_field: str
    status_field: Optional[str] = None
    published_value: str = "Published"
    sort_property: str = "Name"


STUDIOS = CollectionSpec(
    name="studios",
    fields={
        "Status": "Status",
        "Name": "Name",
        "Number": "Number",
        "City": "City",
        "Cover": "Cover",
        "Website": "Website URL",
        "IG": "IG",
        "Email": "Email",
        "Email2": "Email 2",
        "Phone": "Phone",
        "Address": "Address",
        "Latitude": "Latitude",
        "Longitude": "Longitude",
    },
    image_field="Cover",
    status_field="Status",
)

MOODBOARD = CollectionSpec(
    name="moodboard",
    fields={
        "name": "Name",
        "city": "City",
        "designer": "Designer",
        "year": "Year",
        "client": "Client",
        "link": "Link",
        "imageUrl": "Image",
        "status": "Status",
    },
    image_field="imageUrl",
    status_field="status",
)


def page_to_item(page: Mapping[str, Any], spec: CollectionSpec) -> ContentItem:
    props = page.get("properties") or {}
    metadata = {out: extract_property_value(props.get(prop)) for out, prop in spec.fields.items()}
    image_url = metadata.get(spec.image_field)
    return ContentItem(
        id=str(page.get("id", "")),
        image_url=image_url if isinstance(image_url, str) and image_url else None,
        metadata=metadata,
    )


def is_published(page: Mapping[str, Any], spec: CollectionSpec) -> bool:
    """Pages pass when the status matches, or when the database has no status property."""
    if spec.status_field is None:
        return True
    prop_name = spec.fields[spec.status_field]
    props = page.get("properties") or {}
    if prop_name not in props:
        return True
    return extract_property_value(props.get(prop_name)) == spec.published_value


class NotionContentSource:
    """
    Reads one collection from a Notion database.

    Usage:
        source = NotionContentSource(client, database_id, STUDIOS)
        for item in source.list_published_items():
            ...
    """

    def __init__(self, client: NotionClient, database_id: str, spec: CollectionSpec) -> None:
        self._client = client
        self._database_id = database_id
        self._spec = spec

    @property
    def spec(self) -> CollectionSpec:
        return self._spec

    def list_raw_pages(self) -> list[dict[str, Any]]:
        return self._client.query_database(
            self._database_id,
            sorts=[{"property": self._spec.sort_property, "direction": "ascending"}],
        )

    def list_published_items(self) -> list[ContentItem]:
        return [
            page_to_item(page, self._spec)
            for page in self.list_raw_pages()
            if page.get("id") and is_published(page, self._spec)
        ]
