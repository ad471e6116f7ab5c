from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..datamodels import RawFeedItem

logger = logging.getLogger("news_flash")


class FetchErrorKind(enum.Enum):
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    DECODE = "decode"
    EMPTY = "empty"


class FetchError(Exception):
    """A page could not be turned into items."""

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str = "",
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.status_code = status_code
        detail = message or kind.value
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code})"
        super().__init__(detail)


class Source(ABC):
    """Abstract base class for a paged news feed."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    @abstractmethod
    def request_page(self, page_size: int, page: int = 1) -> List[RawFeedItem]:
        """Return one page of raw items; raises FetchError."""
        pass

    def fetch_page(self, page_size: int, page: int = 1) -> List[RawFeedItem]:
        """Return one page of raw items, or an empty list on any failure."""
        try:
            return self.request_page(page_size, page)
        except FetchError as e:
            logger.warning(
                "Fetch of page %d (size %d) failed [%s]: %s",
                page,
                page_size,
                e.kind.value,
                e,
            )
            return []

    def check_connectivity(self) -> bool:
        """Return True if the network looks usable."""
        return True
