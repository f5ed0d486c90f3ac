from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

from listing_resolver.scraper.validators import is_valid_name, is_valid_rating

NAME_UNAVAILABLE: Final[str] = "Store Name Not Available"
ADDRESS_UNAVAILABLE: Final[str] = "Address not available"
RATING_NOT_APPLICABLE: Final[str] = "N/A"


class ListingRecord(BaseModel):
    source_url: str
    name: str = NAME_UNAVAILABLE
    address: str = ADDRESS_UNAVAILABLE
    rating: str = RATING_NOT_APPLICABLE

    model_config = ConfigDict(frozen=True)

    @field_validator("name", mode="before")
    @classmethod
    def fallback_invalid_name(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not is_valid_name(value)):
            return NAME_UNAVAILABLE
        return value

    @field_validator("address", mode="before")
    @classmethod
    def fallback_missing_address(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return ADDRESS_UNAVAILABLE
        return value

    @field_validator("rating", mode="before")
    @classmethod
    def fallback_invalid_rating(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not is_valid_rating(value)):
            return RATING_NOT_APPLICABLE
        return value

    @property
    def is_informative(self) -> bool:
        return self.name != NAME_UNAVAILABLE

    def public_fields(self) -> dict[str, str]:
        return {"name": self.name, "address": self.address, "rating": self.rating}


class StrategyOutcome(BaseModel):
    strategy: str
    record: ListingRecord | None = None
    error: str | None = None
    matched_selectors: dict[str, str | None] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def succeeded(
        cls,
        strategy: str,
        record: ListingRecord,
        matched_selectors: dict[str, str | None] | None = None,
    ) -> "StrategyOutcome":
        return cls(strategy=strategy, record=record, matched_selectors=matched_selectors or {})

    @classmethod
    def failed(cls, strategy: str, error: str) -> "StrategyOutcome":
        return cls(strategy=strategy, error=error)

    @property
    def useful(self) -> bool:
        return self.record is not None and self.record.is_informative
