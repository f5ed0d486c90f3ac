from dataclasses import dataclass
from typing import Callable, Final

from listing_resolver.scraper.validators import is_valid_address, is_valid_name, is_valid_rating


@dataclass(frozen=True)
class SelectorCandidate:
    selector: str
    validator: Callable[[str | None], bool] | None = None
    all_matches: bool = False

    def accepts(self, text: str | None) -> bool:
        if not text:
            return False
        if self.validator is None:
            return True
        return self.validator(text)


def _name(selector: str) -> SelectorCandidate:
    # Title selectors like bare `h1` also hit page chrome, so every match is inspected.
    return SelectorCandidate(selector, is_valid_name, all_matches=True)


def _address(selector: str) -> SelectorCandidate:
    return SelectorCandidate(selector, is_valid_address)


def _rating(selector: str) -> SelectorCandidate:
    return SelectorCandidate(selector, is_valid_rating)


# Candidate order is priority order. Class names are the obfuscated ones Maps ships today;
# structural attributes (data-item-id, data-attrid) are listed first where they exist.
FIELD_CANDIDATES: Final[dict[str, tuple[SelectorCandidate, ...]]] = {
    "name": (
        _name("h1.DUwDvf"),
        _name("h1[data-attrid='title']"),
        _name(".x3AX1-LfntMc-header-title-title"),
        _name("h1.qrShPb"),
        _name("[data-attrid='title'] h1"),
        _name("h1.SPZz6b"),
        _name("h1"),
        _name(".qrShPb span"),
        _name("[data-value='title']"),
        _name(".fontHeadlineSmall"),
        _name(".fontHeadlineLarge"),
    ),
    "address": (
        _address("button[data-item-id='address'] div.Io6YTe"),
        _address("button[data-item-id='address'] .Io6YTe"),
        _address("[data-item-id='address'] .fontBodyMedium"),
        _address("[data-item-id='address']"),
        _address(".Io6YTe"),
        _address("[data-attrid*='address'] .LrzXr"),
        _address(".LrzXr"),
        _address(".rogA2c .fontBodyMedium"),
        _address("[data-value='address']"),
        _address(".CsEnBe"),
        _address(".fontBodyMedium"),
    ),
    "rating": (
        _rating("div.F7nice span[aria-hidden='true']"),
        _rating(".F7nice span"),
        _rating("span.yi40Hd.YrbPuc"),
        _rating(".MW4etd"),
        _rating("[data-attrid*='rating'] span"),
        _rating(".Aq14fc .yi40Hd"),
        _rating(".jANrlb .fontDisplayLarge"),
        _rating(".ceNzKf"),
    ),
}

# Any of these becoming visible means the listing panel has rendered something worth reading.
CONTENT_READY: Final[tuple[str, ...]] = (
    "h1",
    "[data-item-id]",
    ".DUwDvf",
    ".qrShPb",
)

TITLE_READY: Final[tuple[str, ...]] = (
    "h1.DUwDvf",
    "h1",
    ".qrShPb",
)
