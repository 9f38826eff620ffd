"""
Color helpers for intervention mixes and rule colors.

Mix colors are derived from the mix label with a string hash so the same mix
always gets the same color across the legend, the table and the export.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

# Configure logging
logger = logging.getLogger(__name__)


# Frequently used mixes get fixed colors
PREDEFINED_INTERVENTION_COLORS = {
    "CM": "#9ca3af",    # case management only, the default state
    "None": "#e5e7eb",  # no interventions
}

# Fill for districts with no assignment
NO_DATA_COLOR = "#e5e7eb"

HASH_SATURATION = 65
HASH_LIGHTNESS = 55


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def hsl_to_hex(h: float, s: float, l: float) -> str:
    """
    Convert an HSL color (h in degrees, s and l in percent) to a hex string.

    Example:
        >>> hsl_to_hex(0, 100, 50)
        '#ff0000'
    """
    s /= 100
    l /= 100

    c = (1 - abs(2 * l - 1)) * s
    x = c * (1 - abs((h / 60) % 2 - 1))
    m = l - c / 2

    if 0 <= h < 60:
        r, g, b = c, x, 0
    elif 60 <= h < 120:
        r, g, b = x, c, 0
    elif 120 <= h < 180:
        r, g, b = 0, c, x
    elif 180 <= h < 240:
        r, g, b = 0, x, c
    elif 240 <= h < 300:
        r, g, b = x, 0, c
    elif 300 <= h < 360:
        r, g, b = c, 0, x
    else:
        r, g, b = 0, 0, 0

    return "#" + "".join(f"{_round_half_up((n + m) * 255):02x}" for n in (r, g, b))


def string_hash(text: str) -> int:
    """32-bit signed rolling hash (h * 31 + code unit) over UTF-16 code units."""
    h = 0
    encoded = text.encode('utf-16-le')
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def generate_color_from_string(text: str) -> str:
    """Deterministic color for a string: hashed hue, fixed saturation and lightness."""
    hue = abs(string_hash(text)) % 360
    return hsl_to_hex(hue, HASH_SATURATION, HASH_LIGHTNESS)


def get_color_for_intervention_mix(mix_label: str) -> str:
    """
    Color for an intervention mix label.

    Predefined mixes keep their fixed color, any other label gets a hashed
    color. The empty label is rendered as the "None" mix.
    """
    label = mix_label if mix_label else "None"
    if label in PREDEFINED_INTERVENTION_COLORS:
        return PREDEFINED_INTERVENTION_COLORS[label]
    return generate_color_from_string(label)


def hex_to_rgb(color: str) -> Tuple[int, int, int]:
    """
    Parse '#rrggbb' or '#rgb' into an RGB tuple.

    Raises:
        ValueError: If the string is not a hex color
    """
    value = color.strip().lstrip('#')
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        raise ValueError(f"Not a hex color: {color!r}")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def rgb_to_hex(rgb: Sequence[float]) -> str:
    return "#" + "".join(f"{max(0, min(255, _round_half_up(c))):02x}" for c in rgb)


def blend_colors(colors: Sequence[str]) -> Optional[str]:
    """
    Blend an ordered list of rule colors into one color.

    Each channel is the mean of the input channels. A single color is
    returned unchanged and an empty list gives None. Colors that cannot be
    parsed are skipped.

    Args:
        colors: Hex colors, in rule-list order

    Returns:
        str: Blended hex color, or None
    """
    if not colors:
        return None
    if len(colors) == 1:
        return colors[0]

    parsed: List[Tuple[int, int, int]] = []
    for color in colors:
        try:
            parsed.append(hex_to_rgb(color))
        except ValueError:
            logger.warning(f"Ignoring invalid rule color: {color!r}")

    if not parsed:
        return None

    count = len(parsed)
    mean = [sum(channel) / count for channel in zip(*parsed)]
    return rgb_to_hex(mean)
