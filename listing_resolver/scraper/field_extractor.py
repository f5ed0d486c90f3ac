from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final, Mapping, Protocol, Sequence

from listing_resolver.models.listing import ADDRESS_UNAVAILABLE, NAME_UNAVAILABLE, RATING_NOT_APPLICABLE
from listing_resolver.scraper.selectors import FIELD_CANDIDATES, SelectorCandidate
from listing_resolver.scraper.validators import clean_text

LOGGER = logging.getLogger(__name__)

FIELD_SENTINELS: Final[dict[str, str]] = {
    "name": NAME_UNAVAILABLE,
    "address": ADDRESS_UNAVAILABLE,
    "rating": RATING_NOT_APPLICABLE,
}

# Collects raw innerText for every candidate in one round trip. A selector that throws
# (invalid syntax, detached nodes) contributes an empty list instead of failing the call.
_COLLECT_CANDIDATE_TEXTS = """
(fields) => {
    const readText = (node) => {
        try {
            return node.innerText || node.textContent || "";
        } catch (error) {
            return "";
        }
    };

    const result = {};
    for (const [field, candidates] of Object.entries(fields)) {
        result[field] = candidates.map(({ selector, all }) => {
            try {
                const nodes = all
                    ? Array.from(document.querySelectorAll(selector))
                    : [document.querySelector(selector)].filter(Boolean);
                return nodes.map(readText);
            } catch (error) {
                return [];
            }
        });
    }
    return result;
}
"""


class EvaluatesScript(Protocol):
    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...


@dataclass(frozen=True)
class FieldMatch:
    value: str
    selector: str | None = None

    @property
    def matched(self) -> bool:
        return self.selector is not None


class FieldExtractor:
    def __init__(self, candidates: Mapping[str, Sequence[SelectorCandidate]] | None = None) -> None:
        self._candidates = dict(candidates or FIELD_CANDIDATES)
        unknown = set(self._candidates) - set(FIELD_SENTINELS)
        if unknown:
            raise ValueError(f"Unknown listing fields: {', '.join(sorted(unknown))}")

    async def extract(self, page: EvaluatesScript) -> dict[str, FieldMatch]:
        """Read every candidate from ``page`` and pick the first accepted text per field.

        Errors raised by ``page.evaluate`` itself propagate; the caller decides whether
        a page that cannot run scripts is worth falling back from.
        """
        payload = {
            field: [{"selector": item.selector, "all": item.all_matches} for item in candidates]
            for field, candidates in self._candidates.items()
        }
        raw = await page.evaluate(_COLLECT_CANDIDATE_TEXTS, payload)
        return self.select(raw if isinstance(raw, Mapping) else {})

    def select(self, raw: Mapping[str, Any]) -> dict[str, FieldMatch]:
        matches: dict[str, FieldMatch] = {}
        for field, sentinel in FIELD_SENTINELS.items():
            candidates = self._candidates.get(field, ())
            match = self._select_field(candidates, raw.get(field))
            if match is None:
                match = FieldMatch(sentinel)
            else:
                LOGGER.debug("Field %s matched selector %r: %r", field, match.selector, match.value)
            matches[field] = match
        return matches

    def _select_field(self, candidates: Sequence[SelectorCandidate], texts_by_candidate: Any) -> FieldMatch | None:
        if not isinstance(texts_by_candidate, Sequence) or isinstance(texts_by_candidate, str):
            return None

        for candidate, texts in zip(candidates, texts_by_candidate):
            for text in self._candidate_texts(candidate, texts):
                if candidate.accepts(text):
                    return FieldMatch(text, candidate.selector)

        return None

    def _candidate_texts(self, candidate: SelectorCandidate, texts: Any) -> list[str]:
        if isinstance(texts, str):
            texts = [texts]
        if not isinstance(texts, Sequence):
            return []

        if not candidate.all_matches:
            texts = list(texts)[:1]
        return [text for text in (clean_text(item) for item in texts) if text]
