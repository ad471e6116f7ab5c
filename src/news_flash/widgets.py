from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.widgets import ListItem, Static
from rich.text import Text

from .datamodels import NewsItem
from .normalizer import extract_main_content, extract_title


# --- UI Widgets ---
class TickerItem(ListItem):
    def __init__(self, item: NewsItem):
        super().__init__(classes="important" if item.is_important else None)
        self.item = item

    def compose(self) -> ComposeResult:
        images = len(self.item.image_urls)
        with Horizontal(classes="ticker-container"):
            yield Static(self.item.date, classes="ticker-time")
            yield Static(self.render_text(), classes="ticker-text")
            yield Static(f"[{images} img]" if images else "", classes="ticker-images")

    def render_text(self) -> Text:
        title = extract_title(self.item.text)
        body = extract_main_content(self.item.text)
        text = Text(title, style="bold red" if self.item.is_important else "bold")
        if body and body != title:
            text.append("  ")
            text.append(body)
        return text


class StatusBar(Static):
    loading_status = reactive("")
    interval_hint = reactive("")

    def on_mount(self) -> None:
        self.update_display()

    def update_display(self) -> None:
        """Update the status bar display."""
        status_items = []
        if self.loading_status:
            status_items.append(self.loading_status)

        if self.interval_hint:
            status_items.append(self.interval_hint)

        self.update(" | ".join(status_items))

    def watch_loading_status(self, loading_status: str) -> None:
        self.update_display()

    def watch_interval_hint(self, interval_hint: str) -> None:
        self.update_display()


class ErrorMessage(Static):
    def __init__(self, message: str):
        super().__init__(Text(message, style="bold red"))
