from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, List, Optional, Sequence

from .config import LOAD_MORE_PAGE_SIZE, REFRESH_PAGE_SIZE, Settings, clamp_interval
from .datamodels import Classification, MergeMode, NewsItem
from .dispatcher import AnnouncementDispatcher, Notifier, Scheduler
from .engine import AlertEngine
from .normalizer import normalize_all
from .sources.base import Source
from .sources.manager import get_source
from .speech import CommandSoundPlayer, CommandSpeaker, DesktopNotifier, NullSpeaker

logger = logging.getLogger("news_flash")


class PollState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    DISPATCHING = "dispatching"
    LOADING_MORE = "loading_more"


class Poller:
    """
    Runs the fetch -> normalize -> classify -> dispatch pipeline.

    Every entry point must move the poller out of IDLE first; a call that
    finds it busy is skipped, not queued.
    """

    def __init__(
        self,
        source: Source,
        engine: AlertEngine,
        dispatcher: AnnouncementDispatcher,
        settings: Settings,
        probe_connectivity: bool = True,
    ):
        self.source = source
        self.engine = engine
        self.dispatcher = dispatcher
        self.settings = settings
        self.probe_connectivity = probe_connectivity
        self.state = PollState.IDLE
        self.current_page = 1
        self.has_more = True
        self._lock = threading.Lock()

    @property
    def interval(self) -> float:
        return clamp_interval(self.settings.refresh_interval)

    def set_interval(self, seconds: float) -> float:
        self.settings.refresh_interval = clamp_interval(seconds)
        logger.info("Refresh interval set to %.0fs", self.settings.refresh_interval)
        return self.settings.refresh_interval

    @property
    def items(self) -> List[NewsItem]:
        return self.engine.items

    def _transition(self, expected: PollState, new: PollState) -> bool:
        with self._lock:
            if self.state is not expected:
                return False
            self.state = new
            return True

    def _reset(self) -> None:
        with self._lock:
            self.state = PollState.IDLE

    def _fetch(self, page_size: int, page: int = 1) -> List[NewsItem]:
        return normalize_all(self.source.fetch_page(page_size, page))

    def load_initial(self) -> List[NewsItem]:
        """First load: show the latest page and seed the seen set without alerting."""
        if not self._transition(PollState.IDLE, PollState.FETCHING):
            logger.warning("Initial load skipped - poller is %s", self.state.value)
            return []
        try:
            if self.probe_connectivity and not self.source.check_connectivity():
                logger.warning("Initial load skipped - no network connectivity")
                return []
            items = self._fetch(REFRESH_PAGE_SIZE)
            self.engine.replace(items)
            self.current_page = 1
            self.has_more = len(items) >= REFRESH_PAGE_SIZE
            if items:
                self.engine.initial_seed(items)
            return items
        finally:
            self._reset()

    def refresh_background(self) -> Optional[Classification]:
        """Periodic tick; returns None when skipped because the poller is busy."""
        if not self._transition(PollState.IDLE, PollState.FETCHING):
            logger.info("Background refresh skipped - poller is %s", self.state.value)
            return None
        try:
            items = self._fetch(REFRESH_PAGE_SIZE)
            if not items:
                return Classification()

            if not self.engine.seeded:
                # Nothing loaded yet; treat this fetch as the launch snapshot
                added = self.engine.merge_incoming(items, MergeMode.PREPEND)
                self.engine.initial_seed(items)
                return Classification(truly_new=added)

            self._transition(PollState.FETCHING, PollState.CLASSIFYING)
            result = self.engine.classify_batch(items)

            self._transition(PollState.CLASSIFYING, PollState.DISPATCHING)
            if result.has_alerts:
                self.dispatcher.dispatch(result)

            result.truly_new = self.engine.merge_incoming(items, MergeMode.PREPEND)
            if result.truly_new:
                logger.info(
                    "Background: added %d new items at top, total %d",
                    len(result.truly_new),
                    len(self.engine.items),
                )
            return result
        finally:
            self._reset()

    def refresh_manual(self) -> List[NewsItem]:
        """User refresh: replace the list with the latest page."""
        if not self._transition(PollState.IDLE, PollState.FETCHING):
            logger.info("Manual refresh skipped - poller is %s", self.state.value)
            return []
        try:
            self.dispatcher.play_refresh_sound()
            items = self._fetch(REFRESH_PAGE_SIZE)
            if not items:
                return []
            self.engine.replace(items)
            self.current_page = 1
            self.has_more = len(items) >= REFRESH_PAGE_SIZE
            # A reload is a fresh snapshot, so it never alerts
            if self.engine.seeded:
                self.engine.mark_seen(items)
            else:
                self.engine.initial_seed(items)
            logger.info("Manual refresh: updated with %d items", len(items))
            return items
        finally:
            self._reset()

    def load_more(self) -> List[NewsItem]:
        """Fetch the next page and append items not already shown."""
        if not self.has_more:
            return []
        if not self._transition(PollState.IDLE, PollState.LOADING_MORE):
            logger.info("Load more skipped - poller is %s", self.state.value)
            return []
        try:
            next_page = self.current_page + 1
            items = self._fetch(LOAD_MORE_PAGE_SIZE, next_page)
            if not items:
                self.has_more = False
                logger.info("No more items available from feed")
                return []
            added = self.engine.merge_incoming(items, MergeMode.APPEND)
            if not added:
                self.has_more = False
                logger.info("All items on page %d were duplicates, stopping", next_page)
                return []
            self.current_page = next_page
            logger.info(
                "Load more: added %d of %d items, total %d",
                len(added),
                len(items),
                len(self.engine.items),
            )
            return added
        finally:
            self._reset()


class PollTimer:
    """Repeating timer thread for running the poller without a UI loop."""

    def __init__(self, interval: float, callback: Callable[[], object]):
        self.interval = interval
        self.callback = callback
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._wake.clear()
        self._thread = threading.Thread(target=self._run, name="poll-timer", daemon=True)
        self._thread.start()
        logger.info("Started refresh timer with interval %.0fs", self.interval)

    def _run(self) -> None:
        while not self._stop.is_set():
            if self._wake.wait(self.interval):
                # Woken early by reschedule() or stop(); restart the wait
                self._wake.clear()
                continue
            try:
                self.callback()
            except Exception:
                logger.exception("Poll callback failed")

    def reschedule(self, interval: float) -> None:
        self.interval = interval
        self._wake.set()
        logger.info("Refresh interval changed to %.0fs", interval)

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


def build_poller(
    settings: Settings,
    notifiers: Sequence[Notifier] = (),
    speak: bool = True,
    sound_fallback: Optional[Callable[[], None]] = None,
    scheduler: Optional[Scheduler] = None,
) -> Poller:
    """Wire the configured source, engine and dispatcher together."""
    source = get_source({"source": settings.source, "sources": settings.sources})
    engine = AlertEngine(settings.monitored_keywords)
    speaker = CommandSpeaker(settings.voice) if speak else NullSpeaker()
    all_notifiers: List[Notifier] = list(notifiers)
    if settings.desktop_notifications:
        all_notifiers.append(DesktopNotifier())
    dispatcher = AnnouncementDispatcher(
        settings,
        speaker,
        CommandSoundPlayer(fallback=sound_fallback),
        all_notifiers,
        scheduler,
    )
    return Poller(source, engine, dispatcher, settings)
