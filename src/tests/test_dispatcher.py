from __future__ import annotations

import pytest

from news_flash.config import Settings
from news_flash.datamodels import Classification, ContentMode, NewsItem
from news_flash.dispatcher import (
    IMPORTANT_CATEGORY,
    KEYWORD_CATEGORY,
    SPEECH_DELAY,
    SPEECH_DELAY_AFTER_IMPORTANT,
    UNKNOWN_KEYWORD,
    AnnouncementDispatcher,
    SpeechState,
    speech_timeout,
)


class FakeScheduler:
    def __init__(self):
        self.pending = []

    def call_later(self, delay, callback):
        self.pending.append((delay, callback))

    @property
    def delays(self):
        return [delay for delay, _ in self.pending]

    def run_pending(self, max_delay=None):
        """Run (and drop) callbacks whose delay is at most max_delay."""
        ready = [
            (delay, cb)
            for delay, cb in self.pending
            if max_delay is None or delay <= max_delay
        ]
        self.pending = [entry for entry in self.pending if entry not in ready]
        for _, callback in ready:
            callback()


class FakeSpeaker:
    def __init__(self):
        self.spoken = []
        self.callbacks = []
        self.stops = 0

    def speak(self, text, rate, on_done):
        self.spoken.append((text, rate))
        self.callbacks.append(on_done)

    def stop(self):
        self.stops += 1


class FakeSounds:
    def __init__(self):
        self.played = []

    def play(self, name):
        self.played.append(name)


class FakeNotifier:
    def __init__(self):
        self.notes = []

    def notify(self, note):
        self.notes.append(note)


def news(body, important=False):
    return NewsItem(text=f"10:00:00\n{body}", is_important=important, date="10:00:00")


@pytest.fixture
def parts():
    return FakeSpeaker(), FakeSounds(), FakeNotifier(), FakeScheduler()


@pytest.fixture
def dispatcher(parts):
    speaker, sounds, notifier, scheduler = parts
    return AnnouncementDispatcher(
        Settings(), speaker, sounds, notifiers=[notifier], scheduler=scheduler
    )


def test_important_and_keyword_dispatch(dispatcher, parts):
    speaker, sounds, notifier, scheduler = parts
    important = news("【央行降息】25个基点", important=True)
    keyword = news("【股市】收涨")
    result = Classification(
        newly_important=[important],
        newly_keyword_matched=[keyword],
        matched_keywords={keyword.fingerprint: "股市"},
    )

    dispatcher.dispatch(result)

    assert sounds.played == ["Submarine", "Glass"]
    assert [n.category for n in notifier.notes] == [IMPORTANT_CATEGORY, KEYWORD_CATEGORY]
    assert notifier.notes[0].subtitle == "央行降息"
    assert notifier.notes[0].body == "25个基点"
    assert notifier.notes[0].identifier.startswith("important_news_")
    assert notifier.notes[1].title == "🔍 关键词匹配: 股市"
    assert notifier.notes[1].identifier.startswith("keyword_news_股市_")
    assert scheduler.delays == [SPEECH_DELAY, SPEECH_DELAY_AFTER_IMPORTANT]


def test_keyword_speech_uses_short_delay_alone(dispatcher, parts):
    _, _, _, scheduler = parts
    item = news("【股市】收涨")
    dispatcher.dispatch(
        Classification(newly_keyword_matched=[item], matched_keywords={item.fingerprint: "股市"})
    )
    assert scheduler.delays == [SPEECH_DELAY]


def test_important_speech_title_then_busy_drops_keyword(dispatcher, parts):
    speaker, _, _, scheduler = parts
    important = news("【央行降息】25个基点", important=True)
    keyword = news("【股市】收涨")
    dispatcher.dispatch(
        Classification(newly_important=[important], newly_keyword_matched=[keyword])
    )

    scheduler.run_pending(max_delay=SPEECH_DELAY)
    assert speaker.spoken == [("央行降息", 0.5)]
    assert dispatcher.state is SpeechState.SPEAKING

    scheduler.run_pending(max_delay=SPEECH_DELAY_AFTER_IMPORTANT)
    # Still speaking the important item, so the keyword utterance is dropped
    assert len(speaker.spoken) == 1


def test_each_category_speaks_its_own_item(dispatcher, parts):
    speaker, _, _, scheduler = parts
    important = news("【央行降息】25个基点", important=True)
    keyword = news("【股市】收涨")
    dispatcher.dispatch(
        Classification(newly_important=[important], newly_keyword_matched=[keyword])
    )

    scheduler.run_pending(max_delay=SPEECH_DELAY)
    speaker.callbacks[0]()
    scheduler.run_pending(max_delay=SPEECH_DELAY_AFTER_IMPORTANT)

    # Important item in title mode, keyword item in full mode
    assert [text for text, _ in speaker.spoken] == ["央行降息", "收涨"]


def test_broadcast_disabled_schedules_nothing(parts):
    speaker, sounds, notifier, scheduler = parts
    settings = Settings(important_broadcast_enabled=False, keyword_broadcast_enabled=False)
    dispatcher = AnnouncementDispatcher(
        settings, speaker, sounds, notifiers=[notifier], scheduler=scheduler
    )
    dispatcher.dispatch(
        Classification(newly_important=[news("a", True)], newly_keyword_matched=[news("b")])
    )
    assert scheduler.pending == []
    assert sounds.played == ["Submarine", "Glass"]
    assert len(notifier.notes) == 2


def test_unknown_keyword_fallback(dispatcher, parts):
    _, _, notifier, _ = parts
    dispatcher.dispatch(Classification(newly_keyword_matched=[news("x")]))
    assert notifier.notes[0].title.endswith(UNKNOWN_KEYWORD)


def test_empty_classification_is_silent(dispatcher, parts):
    speaker, sounds, notifier, scheduler = parts
    dispatcher.dispatch(Classification())
    assert sounds.played == []
    assert notifier.notes == []
    assert scheduler.pending == []


def test_completion_releases_speaker(dispatcher, parts):
    speaker, _, _, _ = parts
    assert dispatcher.speak(news("【标题】正文"), ContentMode.FULL)
    assert speaker.spoken == [("正文", 0.5)]
    assert dispatcher.speech_busy

    speaker.callbacks[0]()
    assert dispatcher.state is SpeechState.IDLE


def test_timeout_releases_speaker(dispatcher, parts):
    speaker, _, _, scheduler = parts
    dispatcher.speak(news("【标题】正文"), ContentMode.TITLE)
    assert scheduler.delays == [5.0]
    scheduler.run_pending()
    assert dispatcher.state is SpeechState.IDLE


def test_stale_completion_is_ignored(dispatcher, parts):
    speaker, _, _, scheduler = parts
    dispatcher.speak(news("【一】正文"), ContentMode.TITLE)
    scheduler.run_pending()
    dispatcher.speak(news("【二】正文"), ContentMode.TITLE)
    assert dispatcher.speech_busy

    # Completion of the first utterance arrives late
    speaker.callbacks[0]()
    assert dispatcher.speech_busy
    speaker.callbacks[1]()
    assert not dispatcher.speech_busy


def test_busy_speaker_drops_request(dispatcher, parts):
    speaker, _, _, _ = parts
    assert dispatcher.speak(news("【一】正文"), ContentMode.TITLE)
    assert not dispatcher.speak(news("【二】正文"), ContentMode.TITLE)
    assert [text for text, _ in speaker.spoken] == ["一"]


def test_empty_utterance_is_not_spoken(dispatcher, parts):
    speaker, _, _, scheduler = parts
    # Single-line text has no main content
    assert not dispatcher.speak(NewsItem(text="single line"), ContentMode.FULL)
    assert dispatcher.state is SpeechState.IDLE
    assert speaker.spoken == []
    assert scheduler.pending == []


def test_shutdown_stops_and_invalidates(dispatcher, parts):
    speaker, _, _, scheduler = parts
    dispatcher.speak(news("【一】正文"), ContentMode.TITLE)
    stops = speaker.stops
    dispatcher.shutdown()
    assert speaker.stops == stops + 1
    assert dispatcher.state is SpeechState.IDLE

    assert dispatcher.speak(news("【二】正文"), ContentMode.TITLE)
    speaker.callbacks[0]()
    assert dispatcher.speech_busy


def test_refresh_sound(dispatcher, parts):
    _, sounds, _, _ = parts
    dispatcher.play_refresh_sound()
    assert sounds.played == ["Pop"]


@pytest.mark.parametrize(
    "length, mode, expected",
    [
        (10, ContentMode.TITLE, 13.0),
        (1, ContentMode.TITLE, 5.0),
        (100, ContentMode.TITLE, 15.0),
        (10, ContentMode.FULL, 17.0),
        (1, ContentMode.FULL, 10.0),
        (1000, ContentMode.FULL, 60.0),
    ],
)
def test_speech_timeout(length, mode, expected):
    assert speech_timeout(length, 0.5, mode) == pytest.approx(expected)


def test_speech_timeout_bad_rate_uses_default():
    assert speech_timeout(10, 0, ContentMode.TITLE) == pytest.approx(13.0)
