"""
Data classes shared by the ingestion and notification pipelines.

DynamoDB attribute names follow the table schema: PropertyId (hash key),
ListingId, StreetAddress and ImageIds.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

PROPERTY_ID_FIELD_NAME = 'PropertyId'
LISTING_ID_FIELD_NAME = 'ListingId'
STREET_ADDRESS_FIELD_NAME = 'StreetAddress'
IMAGE_IDS_FIELD_NAME = 'ImageIds'


@dataclass
class ListingDetails:
    """Street address and image URLs of one listing, as returned by the detail endpoint."""
    listing_id: int
    street_address: str
    image_urls: List[str] = field(default_factory=list)


@dataclass
class PropertyRecord:
    """Durable record of a fully ingested property."""
    property_id: str
    listing_id: int
    street_address: str
    image_ids: List[str] = field(default_factory=list)

    def to_item(self) -> Dict[str, Any]:
        """Convert to a DynamoDB item (resource-level types)."""
        return {
            PROPERTY_ID_FIELD_NAME: self.property_id,
            LISTING_ID_FIELD_NAME: self.listing_id,
            STREET_ADDRESS_FIELD_NAME: self.street_address,
            IMAGE_IDS_FIELD_NAME: list(self.image_ids),
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'PropertyRecord':
        """
        Build a record from a DynamoDB item.

        Raises KeyError, TypeError or ValueError when the item is malformed.
        """
        property_id = item[PROPERTY_ID_FIELD_NAME]
        if not isinstance(property_id, str):
            raise TypeError(f"Expected {PROPERTY_ID_FIELD_NAME} to be a string, got {property_id!r}")

        listing_id = item[LISTING_ID_FIELD_NAME]
        if isinstance(listing_id, bool) or not isinstance(listing_id, (int, Decimal)):
            raise TypeError(f"Expected {LISTING_ID_FIELD_NAME} to be a number, got {listing_id!r}")

        image_ids = item[IMAGE_IDS_FIELD_NAME]
        if isinstance(image_ids, set):
            # Older records stored ImageIds as a string set, which has no order
            image_ids = sorted(image_ids)
        if not isinstance(image_ids, list) or not all(isinstance(i, str) for i in image_ids):
            raise TypeError(f"Expected {IMAGE_IDS_FIELD_NAME} to be a list of strings, got {image_ids!r}")

        return cls(
            property_id=property_id,
            listing_id=int(listing_id),
            street_address=str(item.get(STREET_ADDRESS_FIELD_NAME, '')),
            image_ids=image_ids,
        )
