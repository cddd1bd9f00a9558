"""Pytest configuration and shared fixtures."""

import os

# Headless pygame for every test that touches a surface
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

import numpy as np
import pytest

from tidescope.core import sources

# Default sample rate for test audio
TEST_SR = 22050


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def pure_sine(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a pure 440Hz sine wave (A4 note).

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0  # 2 seconds
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    frequency = 440.0  # A4
    y = 0.5 * np.sin(2 * np.pi * frequency * t)
    return y.astype(np.float32), sample_rate


@pytest.fixture
def white_noise(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate white noise.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    rng = np.random.default_rng(42)  # Reproducible
    duration = 2.0
    samples = int(sample_rate * duration)
    y = rng.standard_normal(samples).astype(np.float32) * 0.3
    return y, sample_rate


@pytest.fixture
def temp_audio_file(tmp_path, pure_sine):
    """Create a temporary audio file for the sample_clip source."""
    import soundfile as sf

    y, sr = pure_sine
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y, sr)
    return audio_path


class FakeClock:
    """Manually advanced monotonic clock in seconds."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def advance(self, seconds: float):
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakePortAudioError(Exception):
    pass


class FakeInputStream:
    """Records its lifecycle; blocks are pushed through the callback by hand."""

    def __init__(self, samplerate, blocksize, channels, dtype, device, callback):
        self.samplerate = samplerate
        self.blocksize = blocksize
        self.callback = callback
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True

    def push(self, block: np.ndarray):
        self.callback(block.reshape(-1, 1).astype(np.float32), len(block), None, None)


class FakeSoundDevice:
    """
    Stand-in for the sounddevice module.

    ``query_error`` and ``open_error`` inject failures at device lookup
    and stream open respectively.
    """

    PortAudioError = FakePortAudioError

    def __init__(self):
        self.query_error: Exception | None = None
        self.open_error: Exception | None = None
        self.streams: list[FakeInputStream] = []
        self.played = []
        self.stop_calls = 0

    def query_devices(self, device=None, kind=None):
        if self.query_error is not None:
            raise self.query_error
        return {"name": "Fake Mic", "default_samplerate": 48000.0}

    def InputStream(self, **kwargs):
        if self.open_error is not None:
            raise self.open_error
        stream = FakeInputStream(**kwargs)
        self.streams.append(stream)
        return stream

    def play(self, data, samplerate):
        self.played.append((len(data), samplerate))

    def stop(self):
        self.stop_calls += 1


@pytest.fixture
def fake_sd(monkeypatch) -> FakeSoundDevice:
    """Replace the sounddevice module used by the audio sources."""
    fake = FakeSoundDevice()
    monkeypatch.setattr(sources, "sd", fake)
    return fake


@pytest.fixture
def denied_sd(fake_sd) -> FakeSoundDevice:
    """A sound device layer that refuses microphone access."""
    fake_sd.open_error = FakePortAudioError("Error opening InputStream: Permission denied")
    return fake_sd
