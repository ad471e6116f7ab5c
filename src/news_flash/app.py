from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.timer import Timer
from textual.widgets import Header, ListItem, ListView
from textual.worker import Worker, WorkerState

from .config import MIN_REFRESH_INTERVAL, Settings, save_settings
from .datamodels import NewsItem
from .poller import Poller, build_poller
from .speech import Notification
from .widgets import ErrorMessage, StatusBar, TickerItem

logger = logging.getLogger("news_flash")

INTERVAL_STEP = MIN_REFRESH_INTERVAL


class ToastNotifier:
    """Show alerts as Textual toasts; called from worker threads."""

    def __init__(self, app: App):
        self.app = app

    def notify(self, note: Notification) -> None:
        severity = "error" if note.category == "IMPORTANT_NEWS" else "warning"
        message = f"{note.subtitle}\n{note.body}".strip()
        self.app.call_from_thread(
            self.app.notify, message, title=note.title, severity=severity, timeout=10
        )


class FlashApp(App):
    TITLE = "News Flash"
    SUB_TITLE = "7x24 finance live feed"

    CSS = """
    Screen { background: $surface; color: $text; }
    #ticker-list { height: 1fr; border: none; }
    ListItem { padding: 0 1; }
    ListItem.important { background: $error 15%; }
    ListView > ListItem.--highlighted { background: $accent; color: $text; }
    .ticker-container { height: auto; }
    .ticker-time { width: 10; color: $text-muted; }
    .ticker-text { width: 1fr; }
    .ticker-images { width: 9; color: $text-muted; }
    StatusBar { dock: bottom; height: 1; background: $primary-darken-1; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("m", "load_more", "Load more"),
        Binding("plus,equals_sign", "interval_up", "Slower"),
        Binding("minus", "interval_down", "Faster"),
    ]

    def __init__(
        self,
        settings: Settings,
        poller: Optional[Poller] = None,
        speak: bool = True,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.settings = settings
        self.poller = poller or build_poller(
            settings,
            notifiers=[ToastNotifier(self)],
            speak=speak,
            sound_fallback=lambda: self.call_from_thread(self.bell),
        )
        self.refresh_timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield ListView(id="ticker-list")
        yield StatusBar()

    def on_mount(self) -> None:
        self._update_interval_hint()
        self._run_loader(self.poller.load_initial, "initial_loader", "Loading news...")
        self._start_refresh_timer()

    def on_unmount(self) -> None:
        self._stop_refresh_timer()
        self.poller.dispatcher.shutdown()

    # --- Timer ---
    def _start_refresh_timer(self) -> None:
        self.refresh_timer = self.set_interval(self.poller.interval, self._background_tick)
        logger.info("Started refresh timer with interval %.0fs", self.poller.interval)

    def _stop_refresh_timer(self) -> None:
        if self.refresh_timer is not None:
            self.refresh_timer.stop()
            self.refresh_timer = None

    def _background_tick(self) -> None:
        self.run_worker(self.poller.refresh_background, name="refresh_loader", thread=True)

    def _change_interval(self, delta: float) -> None:
        self.poller.set_interval(self.poller.interval + delta)
        save_settings(self.settings)
        # In-flight fetches keep running; only the timer is replaced
        self._stop_refresh_timer()
        self._start_refresh_timer()
        self._update_interval_hint()

    def _update_interval_hint(self) -> None:
        self.query_one(StatusBar).interval_hint = f"every {self.poller.interval:.0f}s"

    # --- Workers ---
    def _run_loader(self, loader: Callable[[], Any], name: str, status: str) -> None:
        self.query_one(StatusBar).loading_status = status
        self.run_worker(loader, name=name, thread=True)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        name = getattr(event.worker, "name", None)
        if event.state is WorkerState.SUCCESS:
            result = getattr(event.worker, "result", None)
            if name == "initial_loader":
                self._show_items(result or [])
            elif name == "manual_loader":
                if result:
                    self._show_items(result)
                else:
                    self.query_one(StatusBar).loading_status = (
                        "Refresh got nothing - keeping current items"
                    )
            elif name == "refresh_loader" and result is not None:
                self._prepend_items(result.truly_new)
            elif name == "more_loader":
                self._append_items(result or [])
        elif event.state is WorkerState.ERROR:
            self._handle_worker_error(event)

    def _handle_worker_error(self, event: Worker.StateChanged) -> None:
        error = getattr(event.worker, "error", None)
        logger.error("Worker %s failed: %s", event.worker.name, error)
        self.query_one(StatusBar).loading_status = "Error loading news."

    def _show_items(self, items: List[NewsItem]) -> None:
        # Render the loader result, not the live list
        status = self.query_one(StatusBar)
        view = self.query_one("#ticker-list", ListView)
        view.clear()
        if not items:
            status.loading_status = "No news loaded - press r to retry"
            view.append(ListItem(TickerListPlaceholder()))
            return
        status.loading_status = f"{len(items)} items"
        view.extend(TickerItem(item) for item in items)

    def _prepend_items(self, items: List[NewsItem]) -> None:
        if not items:
            return
        view = self.query_one("#ticker-list", ListView)
        if view.query(TickerListPlaceholder):
            view.clear()
        view.insert(0, [TickerItem(item) for item in items])
        self.query_one(StatusBar).loading_status = f"{len(self.poller.items)} items"

    def _append_items(self, items: List[NewsItem]) -> None:
        status = self.query_one(StatusBar)
        if not items:
            if self.poller.has_more:
                status.loading_status = "Busy - try loading more again"
            else:
                status.loading_status = "No more items"
            return
        self.query_one("#ticker-list", ListView).extend(TickerItem(item) for item in items)
        status.loading_status = f"{len(self.poller.items)} items"

    # --- Actions ---
    def action_refresh(self) -> None:
        self._run_loader(self.poller.refresh_manual, "manual_loader", "Refreshing...")

    def action_load_more(self) -> None:
        if not self.poller.has_more:
            self.query_one(StatusBar).loading_status = "No more items"
            return
        self._run_loader(self.poller.load_more, "more_loader", "Loading more...")

    def action_interval_up(self) -> None:
        self._change_interval(INTERVAL_STEP)

    def action_interval_down(self) -> None:
        self._change_interval(-INTERVAL_STEP)


class TickerListPlaceholder(ErrorMessage):
    def __init__(self) -> None:
        super().__init__("No news loaded. Press r to retry.")
