from __future__ import annotations

import enum
import functools
import hashlib
import logging
import threading
from typing import Any, Callable, List, Optional, Protocol, Sequence

from .config import DEFAULT_SPEECH_RATE, Settings
from .datamodels import Classification, ContentMode, NewsItem
from .normalizer import extract_main_content, extract_title
from .speech import Notification

logger = logging.getLogger("news_flash")

IMPORTANT_CATEGORY = "IMPORTANT_NEWS"
KEYWORD_CATEGORY = "KEYWORD_NEWS"
IMPORTANT_TITLE = "🚨 重要新闻"
KEYWORD_TITLE = "🔍 关键词匹配: {keyword}"
UNKNOWN_KEYWORD = "未知关键词"

SPEECH_DELAY = 0.5
# Keyword speech waits longer when an important item is about to be spoken
SPEECH_DELAY_AFTER_IMPORTANT = 2.0


class Speaker(Protocol):
    def speak(self, text: str, rate: float, on_done: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...


class SoundPlayer(Protocol):
    def play(self, name: str) -> None: ...


class Notifier(Protocol):
    def notify(self, note: Notification) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Any: ...


class ThreadingScheduler:
    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class SpeechState(enum.Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


def speech_timeout(length: int, rate: float, mode: ContentMode) -> float:
    """Upper bound on how long an utterance keeps the speaker busy."""
    if rate <= 0:
        rate = DEFAULT_SPEECH_RATE
    if mode is ContentMode.TITLE:
        estimated = max(length / (rate * 120.0) * 60.0, 2.0)
        return min(estimated + 3.0, 15.0)
    estimated = max(length / (rate * 100.0) * 60.0, 5.0)
    return min(estimated + 5.0, 60.0)


def _content_digest(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()[:12]


def important_notification(item: NewsItem) -> Notification:
    content = extract_main_content(item.text)
    return Notification(
        title=IMPORTANT_TITLE,
        subtitle=extract_title(item.text),
        body=content,
        category=IMPORTANT_CATEGORY,
        identifier=f"important_news_{_content_digest(content)}",
    )


def keyword_notification(item: NewsItem, keyword: str) -> Notification:
    content = extract_main_content(item.text)
    return Notification(
        title=KEYWORD_TITLE.format(keyword=keyword),
        subtitle=extract_title(item.text),
        body=content,
        category=KEYWORD_CATEGORY,
        identifier=f"keyword_news_{keyword}_{_content_digest(content)}",
    )


class AnnouncementDispatcher:
    """
    Turns a classified batch into sounds, notifications and speech.

    At most one utterance is active; a request to speak while SPEAKING is
    dropped. The speaker is released by its completion callback or by the
    estimated-duration cap, whichever fires first.
    """

    def __init__(
        self,
        settings: Settings,
        speaker: Speaker,
        sounds: SoundPlayer,
        notifiers: Sequence[Notifier] = (),
        scheduler: Optional[Scheduler] = None,
    ):
        self.settings = settings
        self.speaker = speaker
        self.sounds = sounds
        self.notifiers: List[Notifier] = list(notifiers)
        self.scheduler = scheduler or ThreadingScheduler()
        self.state = SpeechState.IDLE
        self._utterance = 0
        self._lock = threading.RLock()

    @property
    def speech_busy(self) -> bool:
        return self.state is SpeechState.SPEAKING

    def _notify(self, note: Notification) -> None:
        for notifier in self.notifiers:
            notifier.notify(note)

    def dispatch(self, result: Classification) -> None:
        speech_scheduled = False

        if result.newly_important:
            self.sounds.play(self.settings.news_sound)
            logger.info("Found %d new important items", len(result.newly_important))
            for item in result.newly_important:
                self._notify(important_notification(item))
            if self.settings.important_broadcast_enabled:
                first = result.newly_important[0]
                mode = ContentMode.from_flag(self.settings.important_broadcast_title)
                self.scheduler.call_later(
                    SPEECH_DELAY, functools.partial(self.speak, first, mode)
                )
                speech_scheduled = True

        if result.newly_keyword_matched:
            self.sounds.play(self.settings.keyword_sound)
            logger.info(
                "Found %d keyword-matching items", len(result.newly_keyword_matched)
            )
            for item in result.newly_keyword_matched:
                keyword = result.matched_keywords.get(item.fingerprint) or UNKNOWN_KEYWORD
                self._notify(keyword_notification(item, keyword))
            if self.settings.keyword_broadcast_enabled:
                first = result.newly_keyword_matched[0]
                mode = ContentMode.from_flag(self.settings.keyword_broadcast_title)
                delay = SPEECH_DELAY_AFTER_IMPORTANT if speech_scheduled else SPEECH_DELAY
                self.scheduler.call_later(delay, functools.partial(self.speak, first, mode))

    def play_refresh_sound(self) -> None:
        self.sounds.play(self.settings.refresh_sound)

    def speak(self, item: NewsItem, mode: ContentMode) -> bool:
        """Start speaking item; returns False if busy or there is nothing to say."""
        if mode is ContentMode.TITLE:
            utterance = extract_title(item.text)
        else:
            utterance = extract_main_content(item.text)

        with self._lock:
            if self.state is SpeechState.SPEAKING:
                logger.warning("Speech already in progress, dropping: %s", utterance[:50])
                return False
            if not utterance:
                logger.warning("Nothing to speak for item: %s", item.text[:100])
                return False
            self._utterance += 1
            token = self._utterance
            self.state = SpeechState.SPEAKING

        rate = self.settings.speech_rate
        timeout = speech_timeout(len(utterance), rate, mode)
        logger.info(
            "Speaking %s (%d chars, cap %.1fs): %s",
            mode.value,
            len(utterance),
            timeout,
            utterance[:50],
        )
        self.speaker.stop()
        self.scheduler.call_later(timeout, lambda: self._release(token, "timeout"))
        self.speaker.speak(utterance, rate, lambda: self._release(token, "completed"))
        return True

    def _release(self, token: int, reason: str) -> None:
        with self._lock:
            if token != self._utterance or self.state is SpeechState.IDLE:
                return
            self.state = SpeechState.IDLE
        logger.debug("Speech released (%s)", reason)

    def shutdown(self) -> None:
        with self._lock:
            # Invalidate any pending completion or timeout
            self._utterance += 1
            self.state = SpeechState.IDLE
        self.speaker.stop()
