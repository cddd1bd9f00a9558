"""
Ocean-tide color grading for the particle field.

Hue sweeps a narrow cyan-blue band across particle indices; lightness
shimmers upward with overall audio intensity.
"""

import numpy as np

HUE_BASE = 190.0  # degrees
HUE_SPAN = 20.0
MIN_BASE_LIGHTNESS = 50.0
MAX_LIGHTNESS = 90.0
SHIMMER_GAIN = 1.5


def shimmer_lightness(color_intensity: float, total_level: float) -> float:
    """
    Lightness percentage for the current frame.

    Args:
        color_intensity: Configured color intensity (10-100).
        total_level: Overall audio level (0-1).

    Returns:
        Lightness in percent, never above 90.
    """
    base = max(float(color_intensity), MIN_BASE_LIGHTNESS)
    shimmer = total_level * (100.0 - base) * SHIMMER_GAIN
    return min(base + shimmer, MAX_LIGHTNESS)


def index_hues(fractions: np.ndarray) -> np.ndarray:
    """Hue in degrees for particles at fractional positions i/N."""
    return HUE_BASE + HUE_SPAN * fractions


def hue_ramps(hue: np.ndarray) -> np.ndarray:
    """
    Per-channel ramp terms of the HSL formula for fixed hues.

    Hues of the field never change after allocation, so these are computed
    once and only rescaled by lightness every frame.

    Returns:
        (N, 3) float32 ramps in [-1, 1].
    """
    ramps = np.empty(hue.shape + (3,), dtype=np.float32)
    for channel, n in enumerate((0.0, 8.0, 4.0)):
        k = (n + hue / 30.0) % 12.0
        ramps[:, channel] = np.clip(np.minimum(k - 3.0, 9.0 - k), -1.0, 1.0)
    return ramps


def ramps_to_rgb(
    ramps: np.ndarray,
    saturation: float,
    lightness: float,
    out: np.ndarray,
) -> np.ndarray:
    """Write RGB for precomputed ``ramps`` into ``out`` without temporaries."""
    a = saturation * min(lightness, 1.0 - lightness)
    np.multiply(ramps, -a, out=out)
    out += lightness
    np.clip(out, 0.0, 1.0, out=out)
    return out


def hsl_to_rgb_array(
    hue: np.ndarray,
    saturation: float,
    lightness: float,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """
    Vectorized HSL to RGB conversion.

    Uses the CSS Color 4 formulation so no per-sector masking is needed.

    Args:
        hue: (N,) hue in degrees.
        saturation: Saturation in [0, 1].
        lightness: Lightness in [0, 1].
        out: Optional (N, 3) array to write into.

    Returns:
        (N, 3) float array in [0, 1].
    """
    if out is None:
        out = np.empty(hue.shape + (3,), dtype=np.float32)
    return ramps_to_rgb(hue_ramps(hue), saturation, lightness, out)
