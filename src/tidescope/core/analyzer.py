"""
Spectral analysis of the live audio snapshot.

Produces byte spectra and waveforms in the same shape and scale as a
browser AnalyserNode (256-point transform, 128 bins), and reduces a
spectrum to bass/mid/treble/total band levels.
"""

from dataclasses import dataclass

import librosa
import numpy as np
from scipy import signal as scipy_signal

FFT_SIZE = 256
N_BINS = FFT_SIZE // 2

# Band edges as bin indices into the 128-bin spectrum
BASS_BINS = (0, 8)
MID_BINS = (8, 32)
TREBLE_BINS = (32, 64)

# Neutral fill when no source is active, in either mode
SILENT_BYTE = 0


@dataclass(frozen=True)
class FrequencyBands:
    """Normalized band levels, each in [0.0, 1.0]."""

    bass: float = 0.0
    mid: float = 0.0
    treble: float = 0.0
    total: float = 0.0

    def as_percentages(self) -> dict[str, int]:
        """Band levels rounded to whole percentages for display."""
        return {
            "bass": int(round(self.bass * 100)),
            "mid": int(round(self.mid * 100)),
            "treble": int(round(self.treble * 100)),
            "total": int(round(self.total * 100)),
        }


def _band_mean(sample: np.ndarray, bins: tuple[int, int]) -> float:
    low, high = bins
    band = sample[low:high]
    if band.size == 0:
        return 0.0
    return float(np.clip(band.mean(dtype=np.float64) / 255.0, 0.0, 1.0))


def reduce_bands(sample: np.ndarray) -> FrequencyBands:
    """
    Reduce a byte sample to band levels.

    The same bin ranges are used for spectra and waveforms.

    Args:
        sample: (128,) uint8 spectrum or waveform.

    Returns:
        FrequencyBands with bass, mid, treble and their mean.
    """
    sample = np.asarray(sample)
    bass = _band_mean(sample, BASS_BINS)
    mid = _band_mean(sample, MID_BINS)
    treble = _band_mean(sample, TREBLE_BINS)
    return FrequencyBands(
        bass=bass,
        mid=mid,
        treble=treble,
        total=(bass + mid + treble) / 3.0,
    )


def silence() -> np.ndarray:
    """
    Neutral sample for when no source is active.

    All zeros in both modes, so band levels read 0 and the field rests in
    the ambient shape.
    """
    return np.full(N_BINS, SILENT_BYTE, dtype=np.uint8)


class SpectrumAnalyser:
    """
    Byte-scaled spectrum and waveform extraction with temporal smoothing.

    Holds the smoothing state between frames, so one analyser should be fed
    one snapshot per frame.
    """

    def __init__(
        self,
        fft_size: int = FFT_SIZE,
        smoothing: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ):
        """
        Initialize the analyser.

        Args:
            fft_size: Transform size; yields fft_size // 2 bins.
            smoothing: Blend factor of the previous magnitude (0-1).
            min_decibels: Level mapped to byte 0.
            max_decibels: Level mapped to byte 255.
        """
        self.fft_size = fft_size
        self.n_bins = fft_size // 2
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self.window = scipy_signal.get_window("blackman", fft_size).astype(np.float32)
        self._magnitudes = np.zeros(self.n_bins, dtype=np.float64)

    def reset(self):
        """Forget smoothing history (used when the source changes)."""
        self._magnitudes.fill(0.0)

    def _fit(self, samples: np.ndarray, length: int) -> np.ndarray:
        """Take the most recent ``length`` samples, left-padding with zeros."""
        samples = np.asarray(samples, dtype=np.float32)
        if len(samples) >= length:
            return samples[-length:]
        return np.pad(samples, (length - len(samples), 0))

    def frequency_bytes(self, samples: np.ndarray) -> np.ndarray:
        """
        Smoothed byte spectrum of the latest block.

        Args:
            samples: Recent time-domain samples in [-1, 1].

        Returns:
            (n_bins,) uint8 spectrum.
        """
        block = self._fit(samples, self.fft_size) * self.window
        spectrum = np.fft.rfft(block)[: self.n_bins]
        magnitudes = np.abs(spectrum) / self.fft_size

        self._magnitudes *= self.smoothing
        self._magnitudes += (1.0 - self.smoothing) * magnitudes

        db = librosa.amplitude_to_db(self._magnitudes, ref=1.0, amin=1e-10, top_db=None)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor((db - self.min_decibels) * scale)
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def waveform_bytes(self, samples: np.ndarray) -> np.ndarray:
        """
        Byte waveform of the most recent n_bins samples (128 = zero amplitude).

        Args:
            samples: Recent time-domain samples in [-1, 1].

        Returns:
            (n_bins,) uint8 waveform.
        """
        block = self._fit(samples, self.n_bins)
        scaled = np.floor(128.0 * (1.0 + block))
        return np.clip(scaled, 0, 255).astype(np.uint8)
