from __future__ import annotations

import base64
import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


def fingerprint(text: str) -> str:
    """Reversible dedup key for a composed item text."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")


# --- Feed records ---
@dataclass(frozen=True)
class FeedTag:
    id: str
    name: str


@dataclass(frozen=True)
class Multimedia:
    img_url: Tuple[str, ...] = ()
    string_value: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> Optional["Multimedia"]:
        # The feed sends either a JSON-encoded string or an object
        if isinstance(value, str):
            return cls(string_value=value)
        if isinstance(value, dict):
            urls = value.get("img_url")
            if not isinstance(urls, list):
                urls = []
            return cls(img_url=tuple(u for u in urls if isinstance(u, str)))
        return None


@dataclass(frozen=True)
class PageInfo:
    page: int
    total_page: int
    total_num: int


@dataclass(frozen=True)
class RawFeedItem:
    id: int
    rich_text: str
    create_time: str
    is_focus: Optional[int] = None
    top_value: Optional[int] = None
    tags: Optional[Tuple[FeedTag, ...]] = None
    multimedia: Optional[Multimedia] = None
    anchor_image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "RawFeedItem":
        """Decode one feed record; raises ValueError if a required field is bad."""
        try:
            item_id = int(record["id"])
            rich_text = record["rich_text"]
            create_time = record["create_time"]
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"invalid feed record: {e}") from e
        if not isinstance(rich_text, str) or not isinstance(create_time, str):
            raise ValueError("invalid feed record: rich_text/create_time not strings")

        return cls(
            id=item_id,
            rich_text=rich_text,
            create_time=create_time,
            is_focus=_optional_int(record.get("is_focus")),
            top_value=_optional_int(record.get("top_value")),
            tags=_decode_tags(record.get("tag")),
            multimedia=Multimedia.from_value(record.get("multimedia")),
            anchor_image_url=(
                record.get("anchor_image_url")
                if isinstance(record.get("anchor_image_url"), str)
                else None
            ),
        )


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _decode_tags(value: Any) -> Optional[Tuple[FeedTag, ...]]:
    if not isinstance(value, list):
        return None
    tags = []
    for entry in value:
        if not isinstance(entry, dict):
            return None
        name = entry.get("name")
        if not isinstance(name, str):
            return None
        tags.append(FeedTag(id=str(entry.get("id", "")), name=name))
    return tuple(tags)


# --- Canonical items ---
@dataclass(frozen=True)
class NewsItem:
    text: str
    is_important: bool = False
    date: str = "00:00:00"
    image_urls: Tuple[str, ...] = ()
    id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.text)


@dataclass
class Classification:
    newly_important: List[NewsItem] = field(default_factory=list)
    newly_keyword_matched: List[NewsItem] = field(default_factory=list)
    truly_new: List[NewsItem] = field(default_factory=list)
    # fingerprint -> keyword that matched
    matched_keywords: Dict[str, str] = field(default_factory=dict)

    @property
    def has_alerts(self) -> bool:
        return bool(self.newly_important or self.newly_keyword_matched)


class MergeMode(enum.Enum):
    PREPEND = "prepend"
    APPEND = "append"


class ContentMode(enum.Enum):
    TITLE = "title"
    FULL = "full"

    @classmethod
    def from_flag(cls, title_only: bool) -> "ContentMode":
        return cls.TITLE if title_only else cls.FULL
