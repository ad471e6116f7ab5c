from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter

from ..config import (
    CONNECT_TIMEOUT,
    CONNECTIVITY_PROBE_URL,
    REQUEST_HEADERS,
    REQUEST_TIMEOUT,
    SINA_FEED_PARAMS,
    SINA_FEED_URL,
)
from ..datamodels import PageInfo, RawFeedItem
from .base import FetchError, FetchErrorKind, Source

logger = logging.getLogger("news_flash")


class SinaSource(Source):
    """Sina 7x24 finance live feed (zhibo.sina.com.cn)."""

    def __init__(self, config: Dict[str, Any], session: Optional[requests.Session] = None):
        super().__init__(config)
        self.base_url = self.config.get("url", SINA_FEED_URL)
        self.params = dict(SINA_FEED_PARAMS)
        self.params.update(self.config.get("params", {}))
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(REQUEST_HEADERS)
        # Failed fetches are not retried; the next tick is the retry
        adapter = HTTPAdapter(max_retries=0)
        s.mount("https://", adapter)
        s.mount("http://", adapter)
        return s

    def build_params(self, page_size: int, page: int = 1) -> Dict[str, str]:
        params = dict(self.params)
        params["pagesize"] = str(page_size)
        if page > 1:
            params["page"] = str(page)
        return params

    def request_page(self, page_size: int, page: int = 1) -> List[RawFeedItem]:
        params = self.build_params(page_size, page)
        logger.debug("Fetching %s %s", self.base_url, params)
        try:
            resp = self.session.get(
                self.base_url,
                params=params,
                timeout=(CONNECT_TIMEOUT, REQUEST_TIMEOUT),
            )
        except requests.RequestException as e:
            raise FetchError(FetchErrorKind.NETWORK, str(e)) from e

        if resp.status_code != 200:
            raise FetchError(
                FetchErrorKind.HTTP_STATUS, "non-200 response", status_code=resp.status_code
            )

        try:
            payload = resp.json()
        except ValueError as e:
            logger.debug("Raw response: %s...", resp.text[:500])
            raise FetchError(FetchErrorKind.DECODE, f"invalid JSON: {e}") from e

        records = _unwrap_feed(payload)
        items = _decode_records(records)
        if not items:
            raise FetchError(FetchErrorKind.EMPTY, f"page {page} returned no items")
        logger.info("Feed returned %d items for page %d", len(items), page)
        return items

    def check_connectivity(self) -> bool:
        try:
            resp = self.session.get(CONNECTIVITY_PROBE_URL, timeout=CONNECT_TIMEOUT)
        except requests.RequestException as e:
            logger.warning("Connectivity probe failed: %s", e)
            return False
        logger.debug("Connectivity probe returned HTTP %d", resp.status_code)
        return 200 <= resp.status_code < 300


def _unwrap_feed(payload: Any) -> List[Any]:
    """Pull the record list out of the {result: {status, data: {feed}}} envelope."""
    if not isinstance(payload, dict) or not isinstance(payload.get("result"), dict):
        raise FetchError(FetchErrorKind.DECODE, "missing result envelope")
    result = payload["result"]

    status = result.get("status")
    if not isinstance(status, dict) or "code" not in status:
        raise FetchError(FetchErrorKind.DECODE, "missing status")
    if status.get("code") != 0:
        raise FetchError(
            FetchErrorKind.DECODE, f"feed error {status.get('code')}: {status.get('msg', '')}"
        )

    data = result.get("data", payload.get("data"))
    try:
        feed = data["feed"]
        records = feed["list"]
    except (KeyError, TypeError) as e:
        raise FetchError(FetchErrorKind.DECODE, f"missing feed list: {e}") from e
    if not isinstance(records, list):
        raise FetchError(FetchErrorKind.DECODE, "feed list is not an array")

    page_info = _decode_page_info(feed.get("page_info"))
    if page_info:
        logger.debug(
            "Page info: page %d/%d, total %d",
            page_info.page,
            page_info.total_page,
            page_info.total_num,
        )
    return records


def _decode_page_info(value: Any) -> Optional[PageInfo]:
    if not isinstance(value, dict):
        return None
    try:
        return PageInfo(
            page=int(value["page"]),
            total_page=int(value["totalPage"]),
            total_num=int(value["totalNum"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def _decode_records(records: List[Any]) -> List[RawFeedItem]:
    items: List[RawFeedItem] = []
    for record in records:
        if not isinstance(record, dict):
            logger.debug("Skipping non-object feed record: %r", record)
            continue
        try:
            items.append(RawFeedItem.from_dict(record))
        except ValueError as e:
            logger.debug("Skipping feed record %s: %s", record.get("id"), e)
    return items

