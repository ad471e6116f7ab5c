"""
Turn raw feed records into NewsItem values and pull titles and body text
back out of the composed item text.

The composed text is always ``"<HH:MM:SS>\\n<body>"``; ``extract_title`` and
``extract_main_content`` rely on that shape, so keep ``compose_text`` and the
extractors in step.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, List

from .datamodels import NewsItem, RawFeedItem

logger = logging.getLogger("news_flash")

FOCUS_TAG = "焦点"
DEFAULT_TIME = "00:00:00"
TITLE_OPEN = "【"
TITLE_CLOSE = "】"
FALLBACK_TITLE_WORDS = 8

IMAGE_URL_PATTERN = re.compile(r"https?://[^\s]+\.(?:jpg|jpeg|png|gif|webp)", re.I)


def extract_time(create_time: str) -> str:
    # "2025-06-28 18:19:51" -> "18:19:51"
    parts = create_time.split(" ")
    if len(parts) >= 2:
        return parts[1]
    return DEFAULT_TIME


def compose_text(body: str, create_time: str) -> str:
    return f"{extract_time(create_time)}\n{body}"


def is_focus_item(raw: RawFeedItem) -> bool:
    return any(tag.name == FOCUS_TAG for tag in raw.tags or ())


def _urls_from_multimedia_json(payload: str) -> List[str]:
    try:
        data = json.loads(payload)
    except ValueError:
        return []
    if not isinstance(data, dict):
        return []

    urls: List[str] = []
    images = data.get("images")
    if isinstance(images, list):
        for image in images:
            if isinstance(image, dict) and isinstance(image.get("url"), str):
                urls.append(image["url"])
    img_url = data.get("img_url")
    if isinstance(img_url, list):
        urls.extend(u for u in img_url if isinstance(u, str))
    if isinstance(data.get("image"), str):
        urls.append(data["image"])
    return urls


def extract_image_urls(raw: RawFeedItem) -> tuple[str, ...]:
    """Collect image URLs from every place the feed may put them."""
    urls: List[str] = []
    if raw.anchor_image_url:
        urls.append(raw.anchor_image_url)
    if raw.multimedia is not None:
        urls.extend(raw.multimedia.img_url)
        if raw.multimedia.string_value:
            urls.extend(_urls_from_multimedia_json(raw.multimedia.string_value))
    urls.extend(m.group(0) for m in IMAGE_URL_PATTERN.finditer(raw.rich_text))
    # dict keeps first-seen order
    return tuple(dict.fromkeys(u for u in urls if u))


def normalize(raw: RawFeedItem) -> NewsItem:
    return NewsItem(
        text=compose_text(raw.rich_text, raw.create_time),
        is_important=is_focus_item(raw),
        date=extract_time(raw.create_time),
        image_urls=extract_image_urls(raw),
    )


def normalize_all(raws: Iterable[RawFeedItem]) -> List[NewsItem]:
    return [normalize(raw) for raw in raws]


def _body_of(text: str) -> str:
    # Drop the time line; the remaining lines are read as one paragraph
    return " ".join(text.split("\n")[1:])


def _title_span(content: str) -> tuple[int, int] | None:
    start = content.find(TITLE_OPEN)
    if start < 0:
        return None
    end = content.find(TITLE_CLOSE, start + 1)
    if end < 0:
        return None
    return start, end


def extract_title(text: str) -> str:
    """Headline of a composed item text, used for speech and notifications."""
    if "\n" not in text:
        return text[:50].strip()

    content = _body_of(text)
    span = _title_span(content)
    if span:
        title = content[span[0] + 1 : span[1]].strip()
        if title:
            return title

    words = content.split()
    if words:
        return " ".join(words[:FALLBACK_TITLE_WORDS])
    return content[:100].strip()


def extract_main_content(text: str) -> str:
    """Body of a composed item text with the bracketed title removed."""
    if "\n" not in text:
        return ""

    content = _body_of(text)
    span = _title_span(content)
    if span:
        content = content[: span[0]] + content[span[1] + 1 :]

    return (
        content.replace("（", "")
        .replace("）", "")
        .replace("  ", " ")
        .strip()
    )
