"""Conversions between Hue color spaces and HSB.

Hue lights report either CIE 1931 xy coordinates or a color temperature
in mirek (reciprocal megakelvin). The gateway models color as HSB, so
both are converted through sRGB using the Wide RGB D65 matrices from
the Hue developer documentation.
"""

from __future__ import annotations

import colorsys
import math

from device_gateway.core.models.device import LightColor

MIN_KELVIN = 2000.0
MAX_KELVIN = 6500.0
WHITE_POINT = (0.3227, 0.3290)


def mirek_to_kelvin(mirek: float) -> float:
    """Convert mirek to kelvin.

    Examples:
        >>> mirek_to_kelvin(250)
        4000.0
    """
    return 1_000_000.0 / mirek


def _gamma(value: float) -> float:
    if value <= 0.0031308:
        return 12.92 * value
    return 1.055 * math.pow(value, 1.0 / 2.4) - 0.055


def _inverse_gamma(value: float) -> float:
    if value > 0.04045:
        return math.pow((value + 0.055) / 1.055, 2.4)
    return value / 12.92


def _hsb(red: float, green: float, blue: float, brightness: float) -> LightColor:
    """HSB from 0-1 RGB, keeping hue and saturation and taking brightness as given."""
    h, s, _ = colorsys.rgb_to_hsv(red, green, blue)
    return LightColor(hue=h * 360.0, saturation=s * 100.0, brightness=brightness)


def xy_to_color(x: float, y: float, brightness: float = 100.0) -> LightColor:
    """Convert CIE xy chromaticity to HSB.

    Args:
        x: CIE x coordinate
        y: CIE y coordinate
        brightness: Light brightness percentage, carried through unchanged

    Returns:
        Approximate HSB color

    Examples:
        >>> xy_to_color(0.3227, 0.3290).saturation < 5
        True
    """
    if y <= 0:
        x, y = WHITE_POINT
    big_y = 1.0
    big_x = (big_y / y) * x
    big_z = (big_y / y) * (1.0 - x - y)

    red = big_x * 1.656492 - big_y * 0.354851 - big_z * 0.255038
    green = -big_x * 0.707196 + big_y * 1.655397 + big_z * 0.036152
    blue = big_x * 0.051713 - big_y * 0.121364 + big_z * 1.011530

    # Out-of-gamut points come back negative
    red, green, blue = (max(c, 0.0) for c in (red, green, blue))
    peak = max(red, green, blue)
    if peak > 0:
        red, green, blue = (c / peak for c in (red, green, blue))
    red, green, blue = (min(max(_gamma(c), 0.0), 1.0) for c in (red, green, blue))
    return _hsb(red, green, blue, brightness)


def color_to_xy(color: LightColor) -> tuple[float, float]:
    """Convert an HSB color to CIE xy, ignoring brightness.

    Examples:
        >>> color_to_xy(LightColor(hue=0, saturation=0))
        (0.3227, 0.329)
    """
    red, green, blue = colorsys.hsv_to_rgb(
        (color.hue % 360.0) / 360.0, color.saturation / 100.0, 1.0
    )
    red, green, blue = (_inverse_gamma(c) for c in (red, green, blue))

    big_x = red * 0.664511 + green * 0.154324 + blue * 0.162028
    big_y = red * 0.283881 + green * 0.668433 + blue * 0.047685
    big_z = red * 0.000088 + green * 0.072310 + blue * 0.986039
    total = big_x + big_y + big_z
    if total == 0 or color.saturation == 0:
        return WHITE_POINT
    return round(big_x / total, 4), round(big_y / total, 4)


def kelvin_to_color(kelvin: float, brightness: float = 100.0) -> LightColor:
    """Approximate the HSB color of a white at the given temperature.

    Uses the Tanner Helland blackbody fit, clamped to the 2000-6500 K
    range Hue bulbs can produce.
    """
    temp = min(max(kelvin, MIN_KELVIN), MAX_KELVIN) / 100.0

    if temp <= 66:
        red = 255.0
        green = 99.4708025861 * math.log(temp) - 161.1195681661
    else:
        red = 329.698727446 * math.pow(temp - 60, -0.1332047592)
        green = 288.1221695283 * math.pow(temp - 60, -0.0755148492)
    if temp >= 66:
        blue = 255.0
    elif temp <= 19:
        blue = 0.0
    else:
        blue = 138.5177312231 * math.log(temp - 10) - 305.0447927307

    red, green, blue = (min(max(c, 0.0), 255.0) / 255.0 for c in (red, green, blue))
    return _hsb(red, green, blue, brightness)


def mirek_to_color(mirek: float, brightness: float = 100.0) -> LightColor:
    return kelvin_to_color(mirek_to_kelvin(mirek), brightness)
