"""
Audio and haptic collaborators for the drill runner.

The core never depends on media succeeding:
- MetronomeCue plays a click on each beat and drops to haptics for the rest
  of the session once audio fails.
- RecordingToggle disables recording for the session when the device or
  permission is missing.

Failures are reported by raising MediaUnavailable from the collaborator.
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger
from rich.console import Console

from .drill import BeatEvent
from .errors import MediaUnavailable


class AudioOutput(Protocol):
    def play_click(self) -> None: ...

    def start_recording(self) -> object:
        """Begin recording and return an opaque handle."""
        ...

    def stop_recording(self, handle: object) -> str:
        """Stop recording and return the URI of the saved take."""
        ...


class HapticOutput(Protocol):
    def pulse(self) -> None: ...


class MetronomeCue:
    """Beat listener: click if audio works, otherwise pulse."""

    def __init__(self, audio: AudioOutput | None, haptics: HapticOutput | None = None):
        self.audio = audio
        self.haptics = haptics
        self.audio_enabled = audio is not None
        self.clicks = 0
        self.pulses = 0

    def __call__(self, event: BeatEvent) -> None:
        if self.audio_enabled and self.audio is not None:
            try:
                self.audio.play_click()
                self.clicks += 1
                return
            except MediaUnavailable as exc:
                logger.warning(f"Metronome audio unavailable, switching to haptics: {exc}")
                self.audio_enabled = False

        if self.haptics is None:
            return
        try:
            self.haptics.pulse()
            self.pulses += 1
        except MediaUnavailable as exc:
            logger.debug(f"Haptic pulse failed: {exc}")


class RecordingToggle:
    """Start/stop practice recording, disabling itself after a media failure."""

    def __init__(self, audio: AudioOutput | None):
        self.audio = audio
        self.enabled = audio is not None
        self.last_error: str | None = None
        self.last_uri: str | None = None
        self._handle: object | None = None

    @property
    def recording(self) -> bool:
        return self._handle is not None

    def toggle(self) -> bool:
        """
        Start recording if idle, stop if recording.

        Returns:
            True if a recording is in progress afterwards
        """
        if not self.enabled or self.audio is None:
            return False

        if self._handle is not None:
            handle, self._handle = self._handle, None
            try:
                self.last_uri = self.audio.stop_recording(handle)
            except MediaUnavailable as exc:
                self._disable(exc)
            return False

        try:
            self._handle = self.audio.start_recording()
        except MediaUnavailable as exc:
            self._disable(exc)
            return False
        return True

    def _disable(self, exc: MediaUnavailable) -> None:
        logger.warning(f"Recording disabled for this session: {exc}")
        self.enabled = False
        self.last_error = str(exc)


class TerminalAudio:
    """Console bell as the metronome click. Terminals cannot record."""

    def __init__(self, console: Console):
        self.console = console

    def play_click(self) -> None:
        if not self.console.is_terminal:
            raise MediaUnavailable("output is not a terminal")
        self.console.bell()

    def start_recording(self) -> object:
        raise MediaUnavailable("recording is not supported in the terminal")

    def stop_recording(self, handle: object) -> str:
        raise MediaUnavailable("recording is not supported in the terminal")


class VisualPulse:
    """Haptic stand-in: counts pulses so the display can flash the beat."""

    def __init__(self) -> None:
        self.count = 0

    def pulse(self) -> None:
        self.count += 1
