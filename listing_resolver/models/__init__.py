from listing_resolver.models.listing import (
    ADDRESS_UNAVAILABLE,
    NAME_UNAVAILABLE,
    RATING_NOT_APPLICABLE,
    ListingRecord,
    StrategyOutcome,
)
from listing_resolver.models.store import StoreRegistration, StoreSummary

__all__ = [
    "ADDRESS_UNAVAILABLE",
    "NAME_UNAVAILABLE",
    "RATING_NOT_APPLICABLE",
    "ListingRecord",
    "StrategyOutcome",
    "StoreRegistration",
    "StoreSummary",
]
