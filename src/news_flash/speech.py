from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger("news_flash")

MACOS_SOUNDS_DIR = "/System/Library/Sounds"
FREEDESKTOP_SOUNDS_DIR = "/usr/share/sounds/freedesktop/stereo"
SOUND_EXTENSIONS = (".aiff", ".wav", ".oga", ".ogg")
SILENT_SOUND = "None"

# macOS system sound names and their nearest freedesktop theme sounds
FREEDESKTOP_SOUND_NAMES = {
    "Pop": "message",
    "Submarine": "dialog-warning",
    "Glass": "complete",
    "Ping": "message-new-instant",
    "Basso": "dialog-error",
    "Funk": "bell",
    "Hero": "complete",
}

PREFERRED_SAY_VOICES = ("Tingting", "Ting-Ting", "Meijia", "Mei-Jia", "Sinji", "Sin-ji")
ESPEAK_CHINESE_VOICE = "zh"


@dataclass(frozen=True)
class Notification:
    title: str
    subtitle: str
    body: str
    category: str
    identifier: str


def rate_to_wpm(rate: float) -> int:
    """Map a 0..1 speech rate onto words per minute (0.5 -> 200)."""
    rate = max(0.0, min(1.0, rate))
    return int(round(80 + rate * 240))


def pick_chinese_voice(listing: str) -> Optional[str]:
    """Choose a Chinese voice from ``say -v ?`` output, preferring the known ones."""
    names = []
    for line in listing.splitlines():
        head = line.split("#", 1)[0].split()
        if len(head) < 2 or not head[-1].lower().startswith("zh"):
            continue
        names.append(" ".join(head[:-1]))
    for preferred in PREFERRED_SAY_VOICES:
        if preferred in names:
            return preferred
    return names[0] if names else None


class CommandSpeaker:
    """
    Speak text through the platform speech command.

    ``say`` is used on macOS; elsewhere ``espeak`` or ``spd-say``. Without a
    configured voice a Chinese one is picked. The completion callback fires
    when the speech process exits, whether it finished or was stopped.
    """

    def __init__(self, voice: Optional[str] = None):
        self.voice = voice
        self._proc: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()
        self._warned = False
        self._say_voice: Optional[str] = None
        self._say_voice_probed = False

    def say_voice(self) -> Optional[str]:
        if self.voice:
            return self.voice
        if not self._say_voice_probed:
            self._say_voice_probed = True
            try:
                listing = subprocess.run(
                    ["say", "-v", "?"], capture_output=True, text=True, check=True
                ).stdout
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning("Could not list say voices: %s", e)
                listing = ""
            self._say_voice = pick_chinese_voice(listing)
            if self._say_voice:
                logger.info("Using Chinese voice %s", self._say_voice)
            else:
                logger.warning("No Chinese voice installed, using the system default")
        return self._say_voice

    def build_command(self, text: str, rate: float) -> Optional[List[str]]:
        wpm = str(rate_to_wpm(rate))
        if shutil.which("say"):
            cmd = ["say", "-r", wpm]
            voice = self.say_voice()
            if voice:
                cmd += ["-v", voice]
            return cmd + [text]
        if shutil.which("espeak"):
            cmd = ["espeak", "-s", wpm, "-v", self.voice or ESPEAK_CHINESE_VOICE]
            return cmd + [text]
        if shutil.which("spd-say"):
            # spd-say rate runs from -100 to 100
            spd_rate = str(int(round((max(0.0, min(1.0, rate)) - 0.5) * 200)))
            cmd = ["spd-say", "-w", "-r", spd_rate, "-l", self.voice or ESPEAK_CHINESE_VOICE]
            return cmd + [text]
        return None

    def speak(self, text: str, rate: float, on_done: Callable[[], None]) -> None:
        cmd = self.build_command(text, rate)
        if cmd is None:
            if not self._warned:
                logger.warning("No speech command found (say, espeak, spd-say)")
                self._warned = True
            on_done()
            return

        try:
            proc = subprocess.Popen(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as e:
            logger.error("Failed to start speech command %s: %s", cmd[0], e)
            on_done()
            return

        with self._lock:
            self._proc = proc
        logger.debug("Speaking with %s (pid %s)", cmd[0], proc.pid)

        def _wait() -> None:
            proc.wait()
            with self._lock:
                if self._proc is proc:
                    self._proc = None
            on_done()

        threading.Thread(target=_wait, name="speech-wait", daemon=True).start()

    def stop(self) -> None:
        with self._lock:
            proc = self._proc
            self._proc = None
        if proc is not None and proc.poll() is None:
            logger.debug("Stopping speech process %s", proc.pid)
            proc.terminate()


class NullSpeaker:
    def speak(self, text: str, rate: float, on_done: Callable[[], None]) -> None:
        logger.info("Speech disabled, would say: %s", text)
        on_done()

    def stop(self) -> None:
        pass


class CommandSoundPlayer:
    """Play a named system sound; ``fallback`` runs when no file or player exists."""

    def __init__(
        self,
        sound_dirs: Optional[Sequence[str]] = None,
        fallback: Optional[Callable[[], None]] = None,
    ):
        self.sound_dirs = (
            list(sound_dirs) if sound_dirs else [MACOS_SOUNDS_DIR, FREEDESKTOP_SOUNDS_DIR]
        )
        self.fallback = fallback

    def find_sound(self, name: str) -> Optional[str]:
        names = [name]
        if name in FREEDESKTOP_SOUND_NAMES:
            names.append(FREEDESKTOP_SOUND_NAMES[name])
        for directory in self.sound_dirs:
            for candidate_name in names:
                for ext in SOUND_EXTENSIONS:
                    candidate = os.path.join(directory, candidate_name + ext)
                    if os.path.exists(candidate):
                        return candidate
        return None

    def play(self, name: str) -> None:
        if not name or name == SILENT_SOUND:
            return
        path = self.find_sound(name)
        player = shutil.which("afplay") or shutil.which("paplay") or shutil.which("aplay")
        if path is None or player is None:
            logger.debug("Sound %s not playable (file=%s, player=%s)", name, path, player)
            if self.fallback is not None:
                self.fallback()
            return
        try:
            subprocess.Popen(
                [player, path], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as e:
            logger.error("Failed to play sound %s: %s", name, e)


class NullSoundPlayer:
    def play(self, name: str) -> None:
        pass


def _applescript_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class DesktopNotifier:
    """Post a system notification through osascript or notify-send."""

    APP_NAME = "news-flash"

    def build_command(self, note: Notification) -> Optional[List[str]]:
        if sys.platform == "darwin" and shutil.which("osascript"):
            script = (
                f"display notification {_applescript_quote(note.body)} "
                f"with title {_applescript_quote(note.title)} "
                f"subtitle {_applescript_quote(note.subtitle)}"
            )
            return ["osascript", "-e", script]
        if shutil.which("notify-send"):
            urgency = "critical" if note.category == "IMPORTANT_NEWS" else "normal"
            return [
                "notify-send",
                "-a",
                self.APP_NAME,
                "-u",
                urgency,
                note.title,
                f"{note.subtitle}\n{note.body}".strip(),
            ]
        return None

    def notify(self, note: Notification) -> None:
        cmd = self.build_command(note)
        if cmd is None:
            logger.debug("No desktop notifier available for %s", note.identifier)
            return
        try:
            subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.error("Failed to post notification %s: %s", note.identifier, e)


class LogNotifier:
    def notify(self, note: Notification) -> None:
        logger.info("[%s] %s | %s | %s", note.category, note.title, note.subtitle, note.body)
