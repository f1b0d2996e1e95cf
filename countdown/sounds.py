from __future__ import annotations

import logging
import wave
from pathlib import Path
from threading import Event, Thread
from typing import Dict, List, Optional, Tuple

import numpy as np

try:
    import winsound
except ImportError:  # pragma: no cover - non-Windows fallback
    winsound = None  # type: ignore

try:
    import pyaudio
except ImportError:  # pragma: no cover - optional audio extra
    pyaudio = None  # type: ignore

logger = logging.getLogger(__name__)

SILENT = -1
SAMPLE_RATE = 24000

SOUND_FILES: Dict[int, str] = {
    0: "alert-sound.wav",
    1: "alert-sound-2.wav",
    2: "alert-sound-3.wav",
}

# (frequency Hz, duration s) segments; a frequency of 0 is a pause.
SOUND_PATTERNS: Dict[int, List[Tuple[float, float]]] = {
    0: [(880.0, 0.3), (0.0, 0.1), (880.0, 0.3), (0.0, 0.1), (1100.0, 0.5)],
    1: [(660.0, 0.2), (990.0, 0.2), (1320.0, 0.4)],
    2: [(523.0, 0.6), (0.0, 0.15), (392.0, 0.8)],
}


class PlaybackFailure(RuntimeError):
    pass


def validate_sound_id(sound_id: int) -> int:
    if sound_id != SILENT and sound_id not in SOUND_FILES:
        raise ValueError(f"Unknown sound {sound_id!r}: expected one of -1 (silent), 0, 1, 2")
    return sound_id


def synthesize_pattern(pattern: List[Tuple[float, float]], sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    parts = []
    for freq, duration in pattern:
        t = np.arange(int(sample_rate * duration)) / sample_rate
        if freq <= 0:
            parts.append(np.zeros_like(t))
            continue
        tone = 0.4 * np.sin(2 * np.pi * freq * t)
        # Short linear fade to avoid clicks at segment edges.
        fade = min(len(tone) // 10, int(sample_rate * 0.01))
        if fade:
            ramp = np.linspace(0.0, 1.0, fade)
            tone[:fade] *= ramp
            tone[-fade:] *= ramp[::-1]
        parts.append(tone)
    return np.concatenate(parts) if parts else np.zeros(0)


def ensure_alarm_sound(path: Path, sound_id: int) -> Path:
    if path.exists():
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    samples = synthesize_pattern(SOUND_PATTERNS[sound_id])
    pcm = (samples * 32767).astype(np.int16)
    with wave.open(str(path), "w") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(SAMPLE_RATE)
        wav.writeframes(pcm.tobytes())
    logger.info("Generated alarm sound %s at %s", sound_id, path)
    return path


class SoundPlayer:
    def __init__(self, sounds_dir: Path, repeats: int = 3, pause_seconds: float = 0.75):
        self.sounds_dir = Path(sounds_dir)
        self.repeats = max(1, repeats)
        self.pause_seconds = pause_seconds
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def sound_path(self, sound_id: int) -> Path:
        return self.sounds_dir / SOUND_FILES[sound_id]

    def play(self, sound_id: int) -> None:
        """Start playing ``sound_id`` in the background; -1 is silent."""
        validate_sound_id(sound_id)
        if sound_id == SILENT:
            logger.info("Alarm sound disabled")
            return
        try:
            path = ensure_alarm_sound(self.sound_path(sound_id), sound_id)
        except OSError as exc:
            raise PlaybackFailure(f"Cannot prepare alarm sound {sound_id}: {exc}") from exc

        self.stop()
        self._stop_event = Event()
        self._thread = Thread(
            target=self._play_loop, args=(path, self._stop_event), name="alarm-sound", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if winsound:
            try:
                winsound.PlaySound(None, winsound.SND_PURGE)
            except RuntimeError:
                logger.debug("winsound.PlaySound purge failed")

    def wait(self, timeout: Optional[float] = None) -> None:
        if self._thread:
            self._thread.join(timeout=timeout)

    def _play_loop(self, path: Path, stop_event: Event) -> None:
        for _ in range(self.repeats):
            if stop_event.is_set():
                return
            try:
                self._play_once(path, stop_event)
            except PlaybackFailure:
                logger.error("Alarm sound playback failed", exc_info=True)
                return
            stop_event.wait(self.pause_seconds)

    def _play_once(self, path: Path, stop_event: Event) -> None:
        with wave.open(str(path), "rb") as wav:
            frames = wav.readframes(wav.getnframes())
            rate = wav.getframerate()
            width = wav.getsampwidth()
        if winsound:  # pragma: no cover - Windows
            try:
                winsound.PlaySound(str(path), winsound.SND_FILENAME | winsound.SND_ASYNC)
            except RuntimeError as exc:
                raise PlaybackFailure(f"winsound could not play {path}: {exc}") from exc
            stop_event.wait(len(frames) / float(rate * width))
            return
        if pyaudio is None:
            logger.info("Alarm ringing... (install the 'audio' extra for sound output)")
            return
        # 100 ms chunks so stop() takes effect between writes.
        chunk = max(width, rate // 10 * width)
        pa = pyaudio.PyAudio()
        try:
            stream = pa.open(format=pyaudio.paInt16, channels=1, rate=rate, output=True)
            for offset in range(0, len(frames), chunk):
                if stop_event.is_set():
                    break
                stream.write(frames[offset:offset + chunk])
            stream.stop_stream()
            stream.close()
        except OSError as exc:
            raise PlaybackFailure(f"Audio output failed: {exc}") from exc
        finally:
            pa.terminate()
