"""
colorspace.py — sRGB to CIE L*a*b* Conversion
==============================================

Reference clusters are seeded in L*a*b* with this exact recipe, so any
change to the constants below shifts every classification:

    sRGB [0-255] → gamma decode → linear RGB → XYZ (sRGB primaries)
                 → divide by D65 white → f(t) → L*, a*, b*

Non-finite results fall back to a neutral grey (L=50, a=0, b=0) per
component so a reading can never poison the distance search with NaN.
"""

import numpy as np

from .models import LabColor, NormalizedColor

# sRGB (D65) → CIE XYZ
SRGB_TO_XYZ = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041],
])

# D65 reference white (Xn, Yn, Zn)
D65_WHITE = np.array([0.95047, 1.00000, 1.08883])

GAMMA_THRESHOLD = 0.04045
LAB_EPSILON = 0.008856
LAB_KAPPA = 7.787

NEUTRAL_LAB = LabColor(l=50.0, a=0.0, b=0.0)


def _decode_gamma(channels: np.ndarray) -> np.ndarray:
    return np.where(
        channels > GAMMA_THRESHOLD,
        ((channels + 0.055) / 1.055) ** 2.4,
        channels / 12.92,
    )


def _lab_f(t: np.ndarray) -> np.ndarray:
    return np.where(t > LAB_EPSILON, np.cbrt(t), LAB_KAPPA * t + 16.0 / 116.0)


def rgb_to_lab(r: float, g: float, b: float) -> LabColor:
    """
    Convert an 8-bit sRGB triple to L*a*b*.

    Inputs are clamped into [0, 255] first; NaN inputs count as 0.
    """
    rgb = np.nan_to_num(np.array([r, g, b], dtype=np.float64), nan=0.0)
    rgb = np.clip(rgb, 0.0, 255.0) / 255.0

    linear = _decode_gamma(rgb)
    xyz = SRGB_TO_XYZ @ linear
    fx, fy, fz = _lab_f(xyz / D65_WHITE)

    l_star = 116.0 * fy - 16.0
    a_star = 500.0 * (fx - fy)
    b_star = 200.0 * (fy - fz)

    # Y of pure white sums to a hair over 1.0 with these primaries
    return LabColor(
        l=float(np.clip(l_star, 0.0, 100.0)) if np.isfinite(l_star) else NEUTRAL_LAB.l,
        a=float(a_star) if np.isfinite(a_star) else NEUTRAL_LAB.a,
        b=float(b_star) if np.isfinite(b_star) else NEUTRAL_LAB.b,
    )


def to_lab(color: NormalizedColor) -> LabColor:
    """Convert a normalized sensor colour to L*a*b*. Never raises."""
    return rgb_to_lab(color.r, color.g, color.b)


def lab_distance(first: LabColor, second: LabColor) -> float:
    """CIE76 ΔE: Euclidean distance in L*a*b*."""
    return float(np.sqrt(
        (first.l - second.l) ** 2
        + (first.a - second.a) ** 2
        + (first.b - second.b) ** 2
    ))
