"""Shape selection from overall audio intensity."""

import math

AMBIENT = "ambient"
SPHERE = "sphere"
CYLINDER = "cylinder"
CRYSTAL = "crystal"

SHAPES = (AMBIENT, SPHERE, CYLINDER, CRYSTAL)
REACTIVE_SHAPES = (SPHERE, CYLINDER, CRYSTAL)

AMBIENT_THRESHOLD = 0.1


def current_shape(mode: str, total_level: float) -> str:
    """
    Pick the shape variant for this frame.

    Recomputed from scratch every frame with no hysteresis, so levels
    hovering around the threshold will flip between shapes. ``mode`` is
    accepted for the caller's convenience; every mode maps the same way.

    Args:
        mode: Visualization mode ("spectrum" or "waveform").
        total_level: Overall band level in [0, 1].

    Returns:
        One of SHAPES.
    """
    if total_level <= AMBIENT_THRESHOLD:
        return AMBIENT
    index = math.floor(total_level * 3) % len(REACTIVE_SHAPES)
    return REACTIVE_SHAPES[index]
