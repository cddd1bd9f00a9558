"""
Audio source adapters.

Each source hands out the most recent block of mono float samples without
blocking. Device and decoding errors are translated into the tidescope
error taxonomy here; the pipeline decides what to do with them.
"""

import abc
import logging
import math
import time
from collections import deque
from pathlib import Path
from typing import Callable

import librosa
import numpy as np

from tidescope.errors import (
    DeviceSetupFailure,
    PermissionDenied,
    ResourceDisposalError,
)

try:
    import sounddevice as sd
except (ImportError, OSError):  # PortAudio shared library missing
    sd = None

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100

# Capture buffer: enough history for a few analysis windows
CAPTURE_HISTORY_SAMPLES = 4096

_PERMISSION_HINTS = ("permission", "denied", "not authorized", "access")


class AudioSource(abc.ABC):
    """A single open audio source with an explicit dispose contract."""

    kind: str = ""

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.closed = False

    @abc.abstractmethod
    def read(self, n_samples: int) -> np.ndarray:
        """Return the latest ``n_samples`` samples (zero-padded, never blocks)."""
        pass

    def _release(self):
        """Release device handles. Called once by close()."""
        pass

    def close(self):
        """
        Release the source.

        Raises:
            ResourceDisposalError: If the source was already closed.
        """
        if self.closed:
            raise ResourceDisposalError(f"{self.kind} source already closed")
        self.closed = True
        self._release()
        logger.info("Closed %s source", self.kind)


class ToneSource(AudioSource):
    """
    Silent synthetic sine generator.

    Starts at 440 Hz and retunes to a random frequency every couple of
    seconds. Samples are computed on demand from the clock, so reads are
    always current and never wait on audio hardware.
    """

    kind = "synthetic_tone"

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        gain: float = 0.1,
        start_frequency: float = 440.0,
        retune_interval: float = 2.0,
        frequency_range: tuple[float, float] = (200.0, 1000.0),
        seed: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(sample_rate)
        self.gain = gain
        self.frequency = start_frequency
        self.retune_interval = retune_interval
        self.frequency_range = frequency_range
        self.rng = np.random.default_rng(seed)
        self.clock = clock

        self._start = clock()
        self._next_retune = self._start + retune_interval

    def _maybe_retune(self, now: float):
        while now >= self._next_retune:
            low, high = self.frequency_range
            self.frequency = float(low + self.rng.random() * (high - low))
            self._next_retune += self.retune_interval

    def read(self, n_samples: int) -> np.ndarray:
        if self.closed:
            return np.zeros(n_samples, dtype=np.float32)

        now = self.clock()
        self._maybe_retune(now)

        # Window ends at "now"; cosine phase shifted by -pi/2 gives a sine
        t0 = (now - self._start) - n_samples / self.sample_rate
        phi = 2.0 * math.pi * self.frequency * t0 - math.pi / 2.0
        tone = librosa.tone(
            self.frequency,
            sr=self.sample_rate,
            length=n_samples,
            phi=phi,
        )
        return (self.gain * tone).astype(np.float32)


class ClipSource(AudioSource):
    """
    A decoded audio file played from the moment it was opened.

    Past the end of the clip the source yields silence.
    """

    kind = "sample_clip"

    def __init__(
        self,
        path: str | Path,
        monitor: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        path = Path(path)
        try:
            y, sr = librosa.load(path, sr=None, mono=True)
        except Exception as e:
            raise DeviceSetupFailure(f"Could not decode sample clip {path}: {e}") from e

        super().__init__(int(sr))
        self.path = path
        self.y = y.astype(np.float32)
        self.duration = len(self.y) / self.sample_rate
        self.clock = clock
        self.monitoring = False

        if monitor:
            self._start_monitor()
        self._start = clock()

    def _start_monitor(self):
        if sd is None:
            logger.warning("sounddevice not available - clip will play silently")
            return
        try:
            sd.play(self.y, self.sample_rate)
            self.monitoring = True
        except sd.PortAudioError as e:
            logger.warning("Clip playback unavailable, analysing silently: %s", e)

    def read(self, n_samples: int) -> np.ndarray:
        if self.closed:
            return np.zeros(n_samples, dtype=np.float32)

        end = int((self.clock() - self._start) * self.sample_rate)
        end = min(max(end, 0), len(self.y))
        start = max(0, end - n_samples)
        block = self.y[start:end]
        if len(block) < n_samples:
            block = np.pad(block, (n_samples - len(block), 0))
        return block

    def _release(self):
        if self.monitoring:
            sd.stop()
            self.monitoring = False


class MicrophoneSource(AudioSource):
    """
    Live capture through a sounddevice input stream.

    The PortAudio callback appends blocks to a bounded deque; reads take a
    snapshot of whatever has arrived, so a stale block is possible but a
    wait never is.
    """

    kind = "microphone"

    def __init__(self, device: int | str | None = None, block_size: int = 512):
        if sd is None:
            raise DeviceSetupFailure("sounddevice/PortAudio is not available")

        try:
            info = sd.query_devices(device, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise PermissionDenied(f"No capture device available: {e}") from e

        super().__init__(int(info["default_samplerate"]))
        max_blocks = max(1, CAPTURE_HISTORY_SAMPLES // block_size)
        self._blocks: deque = deque(maxlen=max_blocks)
        self.stream = None

        try:
            self.stream = sd.InputStream(
                samplerate=self.sample_rate,
                blocksize=block_size,
                channels=1,
                dtype="float32",
                device=device,
                callback=self._audio_callback,
            )
            self.stream.start()
        except sd.PortAudioError as e:
            self._discard_stream()
            message = str(e).lower()
            if any(hint in message for hint in _PERMISSION_HINTS):
                raise PermissionDenied(f"Microphone access denied: {e}") from e
            raise DeviceSetupFailure(f"Could not open microphone stream: {e}") from e

        logger.info(
            "Microphone stream started: %s @ %dHz",
            info.get("name", "system default"),
            self.sample_rate,
        )

    def _audio_callback(self, indata, frames, time_info, status):
        """Runs on the PortAudio thread; keep it minimal."""
        if status:
            logger.warning("Audio callback status: %s", status)
        self._blocks.append(indata[:, 0].copy())

    def _discard_stream(self):
        if self.stream is not None:
            self.stream.close()
            self.stream = None

    def read(self, n_samples: int) -> np.ndarray:
        blocks = list(self._blocks)
        if not blocks:
            return np.zeros(n_samples, dtype=np.float32)
        recent = np.concatenate(blocks)[-n_samples:]
        if len(recent) < n_samples:
            recent = np.pad(recent, (n_samples - len(recent), 0))
        return recent

    def _release(self):
        if self.stream is not None:
            self.stream.stop()
            self._discard_stream()
        self._blocks.clear()
