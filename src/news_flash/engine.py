from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Set

from .datamodels import Classification, MergeMode, NewsItem, fingerprint

logger = logging.getLogger("news_flash")


def find_matching_keyword(text: str, keywords: Iterable[str]) -> Optional[str]:
    """Return the first keyword contained in text, ignoring case."""
    lowered = text.lower()
    for keyword in keywords:
        needle = keyword.lower().strip()
        if needle and needle in lowered:
            return keyword
    return None


def merge_items(
    existing: Sequence[NewsItem], fresh: Sequence[NewsItem], mode: MergeMode
) -> List[NewsItem]:
    """Return the items from fresh that belong in existing for the given mode."""
    if mode is MergeMode.PREPEND:
        known = {item.fingerprint for item in existing}
    else:
        known = {item.text for item in existing}

    added: List[NewsItem] = []
    for item in fresh:
        key = item.fingerprint if mode is MergeMode.PREPEND else item.text
        if key in known:
            continue
        known.add(key)
        added.append(item)
    return added


class AlertEngine:
    """
    Tracks the displayed item list and the fingerprints already alerted on.

    The seen set only grows. Once a fingerprint is in it, no later
    classification reports that item in either alert category.
    """

    def __init__(self, keywords: Optional[Iterable[str]] = None):
        self.items: List[NewsItem] = []
        self.keywords: List[str] = list(keywords or [])
        self._seen: Set[str] = set()
        self.seeded = False

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def has_seen(self, fp: str) -> bool:
        return fp in self._seen

    def set_keywords(self, keywords: Iterable[str]) -> None:
        self.keywords = list(keywords)

    def _keyword_matches(self, items: Iterable[NewsItem]) -> List[NewsItem]:
        return [
            item
            for item in items
            if find_matching_keyword(item.text, self.keywords) is not None
        ]

    def initial_seed(self, items: Sequence[NewsItem]) -> None:
        """Mark everything alert-worthy in the first fetch as already seen."""
        if self.seeded:
            logger.warning("Initial seed requested twice; ignoring")
            return
        self.mark_seen(items)
        self.seeded = True
        logger.info("Seeded %d fingerprints from first fetch", len(self._seen))

    def mark_seen(self, items: Sequence[NewsItem]) -> None:
        """Insert the fingerprints of important and keyword-matching items."""
        for item in items:
            if item.is_important:
                self._seen.add(item.fingerprint)
        for item in self._keyword_matches(items):
            self._seen.add(item.fingerprint)

    def classify_batch(self, fresh: Sequence[NewsItem]) -> Classification:
        result = Classification()
        # Both categories are judged against the set as it was on entry
        seen_before = set(self._seen)
        important_fps: Set[str] = set()
        keyword_fps: Set[str] = set()

        for item in fresh:
            fp = item.fingerprint
            if fp in seen_before:
                continue
            if item.is_important and fp not in important_fps:
                important_fps.add(fp)
                result.newly_important.append(item)
            keyword = find_matching_keyword(item.text, self.keywords)
            if keyword is not None and fp not in keyword_fps:
                keyword_fps.add(fp)
                result.newly_keyword_matched.append(item)
                result.matched_keywords[fp] = keyword

        self._seen.update(important_fps)
        self._seen.update(keyword_fps)

        displayed = {item.fingerprint for item in self.items}
        result.truly_new = [item for item in fresh if item.fingerprint not in displayed]

        if result.has_alerts:
            logger.info(
                "Classified %d items: %d important, %d keyword matches",
                len(fresh),
                len(result.newly_important),
                len(result.newly_keyword_matched),
            )
        return result

    def merge_incoming(self, fresh: Sequence[NewsItem], mode: MergeMode) -> List[NewsItem]:
        """Merge fresh items into the displayed list and return what was added."""
        added = merge_items(self.items, fresh, mode)
        if not added:
            return added
        if mode is MergeMode.PREPEND:
            self.items[:0] = added
        else:
            self.items.extend(added)
        logger.debug(
            "Merged %d items (%s), total %d", len(added), mode.value, len(self.items)
        )
        return added

    def replace(self, items: Sequence[NewsItem]) -> None:
        self.items = list(items)


__all__ = ["AlertEngine", "find_matching_keyword", "fingerprint", "merge_items"]
