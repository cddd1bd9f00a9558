"""
Configuration surface consumed from the UI layer.

A config is validated as a whole and swapped in atomically by the render
loop at the start of the next frame.
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path

from tidescope.errors import ValidationError

# Visualization modes
SPECTRUM = "spectrum"
WAVEFORM = "waveform"
VISUALIZATION_MODES = (SPECTRUM, WAVEFORM)

# Audio sources (mutually exclusive)
MICROPHONE = "microphone"
SAMPLE_CLIP = "sample_clip"
SYNTHETIC_TONE = "synthetic_tone"
NO_SOURCE = "none"
SOURCE_KINDS = (MICROPHONE, SAMPLE_CLIP, SYNTHETIC_TONE, NO_SOURCE)

DENSITY_RANGE = (50, 2000)
PARTICLE_SIZE_RANGE = (0.5, 5.0)
COLOR_INTENSITY_RANGE = (10, 100)

# Resolution presets used by the CLI
PROFILES = {
    "low": {"width": 1280, "height": 720, "fps": 30},
    "medium": {"width": 1920, "height": 1080, "fps": 60},
    "high": {"width": 2560, "height": 1440, "fps": 60},
}


def _check_range(name: str, value, bounds: tuple) -> None:
    low, high = bounds
    if not (low <= value <= high):
        raise ValidationError(f"{name} must be in [{low}, {high}], got {value!r}")


@dataclass(frozen=True)
class VisualizerConfig:
    """Particle, audio and surface settings for one visualizer session."""

    # Particles
    density: int = 800
    particle_size: float = 2.0
    color_intensity: int = 70
    connections_enabled: bool = True

    # Audio
    visualization_mode: str = SPECTRUM
    source_selection: str = NO_SOURCE
    sample_clip: Path | None = None
    monitor_clip: bool = True  # play the clip through the speakers

    # Surface
    width: int = 1280
    height: int = 720
    fps: int = 60

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValidationError if any field is out of range."""
        if isinstance(self.density, bool) or not isinstance(self.density, int):
            raise ValidationError(f"density must be an int, got {self.density!r}")
        _check_range("density", self.density, DENSITY_RANGE)
        _check_range("particle_size", self.particle_size, PARTICLE_SIZE_RANGE)
        _check_range("color_intensity", self.color_intensity, COLOR_INTENSITY_RANGE)

        if self.visualization_mode not in VISUALIZATION_MODES:
            raise ValidationError(
                f"visualization_mode must be one of {VISUALIZATION_MODES}, "
                f"got {self.visualization_mode!r}"
            )
        if self.source_selection not in SOURCE_KINDS:
            raise ValidationError(
                f"source_selection must be one of {SOURCE_KINDS}, "
                f"got {self.source_selection!r}"
            )

        if self.width <= 0 or self.height <= 0:
            raise ValidationError(f"surface size must be positive, got {self.width}x{self.height}")
        if self.fps <= 0:
            raise ValidationError(f"fps must be positive, got {self.fps}")

    def with_changes(self, **changes) -> "VisualizerConfig":
        """
        Return a validated copy with ``changes`` applied.

        The current config is left untouched when validation fails.
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown config field(s): {', '.join(sorted(unknown))}")
        if changes.get("sample_clip") is not None:
            changes["sample_clip"] = Path(changes["sample_clip"])
        return replace(self, **changes)
