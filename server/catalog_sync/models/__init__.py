"""Models module exporting all database models."""

from .departure import CabinPricing, Departure
from .operator import Operator
from .sync_history import SyncHistoryRecord, SyncHistoryStatus
from .tour import Hotel, Inclusion, InclusionType, ItineraryDay, Media, MediaType, Tour

__all__ = [
    # Catalog entities
    "Operator",
    "Tour",
    "Departure",

    # Wholly-owned children
    "CabinPricing",
    "ItineraryDay",
    "Hotel",
    "Media",
    "MediaType",
    "Inclusion",
    "InclusionType",

    # Run audit trail
    "SyncHistoryRecord",
    "SyncHistoryStatus",
]
