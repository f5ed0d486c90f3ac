import re
from typing import Final

BLOCKED_NAME_TERMS: Final[tuple[str, ...]] = ("Google Maps", "Search")
MIN_NAME_LENGTH: Final[int] = 3
MIN_ADDRESS_LENGTH: Final[int] = 6
MAX_RATING: Final[float] = 5.0

_RATING_SHAPE = re.compile(r"\d+\.?\d*")


def clean_text(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = re.sub(r"\s+", " ", value).strip()
    return cleaned or None


def is_valid_name(value: str | None) -> bool:
    if not value or len(value) < MIN_NAME_LENGTH:
        return False
    return not any(term in value for term in BLOCKED_NAME_TERMS)


def is_valid_address(value: str | None) -> bool:
    return bool(value) and len(value) >= MIN_ADDRESS_LENGTH


def is_valid_rating(value: str | None) -> bool:
    """Accept only a bare decimal such as ``4`` or ``4.3`` within ``[0, 5]``.

    Review counts ("127") and decorated labels ("4.3 stars") are rejected so the
    next candidate selector gets its turn.
    """
    if not value or not _RATING_SHAPE.fullmatch(value):
        return False
    try:
        rating = float(value)
    except ValueError:
        return False
    return 0.0 <= rating <= MAX_RATING
