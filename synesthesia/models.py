"""
Color models: each one is a pure function from a point on the color wheel
(hue, lightness) to a complete FM voice.

Lightness runs from 50 (vivid edge of the wheel) to 100 (white center); both
models work on the normalized factor ``lt = (lightness - 50) / 50``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from types import MappingProxyType
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict

from .errors import InvalidColorError, UnknownModelError
from .interpolation import Anchor, lerp, lerp_anchors
from .params import Envelope, Operator, SubOscillator, SynthParams, Waveform

_LOGGER = logging.getLogger("synesthesia.models")

ModelKey = Literal["messiaen", "kandinsky"]
MODEL_KEYS: tuple[ModelKey, ...] = ("messiaen", "kandinsky")
DEFAULT_MODEL: ModelKey = "messiaen"

HUE_MIN, HUE_MAX = 0.0, 360.0
LIGHTNESS_MIN, LIGHTNESS_MAX = 50.0, 100.0

MapColorFn = Callable[[float, float], SynthParams]


class ColorModel(BaseModel):
    key: ModelKey
    name: str
    description: str
    map_color: MapColorFn

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


def check_color(hue: float, lightness: float) -> None:
    """Reject samples outside the wheel instead of clamping them."""
    if not math.isfinite(hue) or not HUE_MIN <= hue < HUE_MAX:
        raise InvalidColorError(f"hue must be in [0, 360), got {hue!r}")
    if not math.isfinite(lightness) or not LIGHTNESS_MIN <= lightness <= LIGHTNESS_MAX:
        raise InvalidColorError(f"lightness must be in [50, 100], got {lightness!r}")


def lightness_factor(lightness: float) -> float:
    """0.0 at the vivid edge, 1.0 at the white center."""
    return (lightness - LIGHTNESS_MIN) / (LIGHTNESS_MAX - LIGHTNESS_MIN)


# -----------------------------------------------------------------------------
# Messiaen: layered, luminous, harmony-derived
# -----------------------------------------------------------------------------

MESSIAEN_CARRIER_ANCHORS: tuple[Anchor, ...] = (
    Anchor(0, 220),  # red: A3
    Anchor(30, 277),  # orange: C#4
    Anchor(60, 440),  # yellow: A4, brightness peak
    Anchor(120, 330),  # green: E4
    Anchor(240, 196),  # blue: G3, trough
    Anchor(270, 262),  # purple: C4
    Anchor(330, 220),
)


def messiaen_map(hue: float, lightness: float) -> SynthParams:
    """Integer-ratio three-operator stack over a half-frequency sub.

    Vivid colors get deeper modulation and a brighter sub; toward white the
    voice thins out, softens its attack and rings longer.
    """
    check_color(hue, lightness)
    carrier_freq = lerp_anchors(MESSIAEN_CARRIER_ANCHORS, hue)
    lt = lightness_factor(lightness)

    ratio2, ratio3 = (3.0, 5.0) if hue > 180 else (2.0, 4.0)

    return SynthParams(
        carrier_freq=carrier_freq,
        carrier_waveform="sine",
        operators=(
            Operator(ratio=2.0, index=lerp(4.5, 1.5, lt), index_decay=lerp(0.3, 0.6, lt)),
            Operator(ratio=ratio2, index=lerp(3.0, 1.0, lt), index_decay=lerp(0.4, 0.7, lt)),
            Operator(ratio=ratio3, index=lerp(1.5, 0.3, lt), index_decay=lerp(0.5, 0.8, lt)),
        ),
        envelope=Envelope(
            attack=lerp(0.03, 0.15, lt),
            decay=lerp(0.2, 0.4, lt),
            sustain=lerp(0.7, 0.4, lt),
            release=lerp(0.6, 1.2, lt),
        ),
        duration=lerp(2.0, 3.5, lt),
        sub=SubOscillator(
            freq=carrier_freq / 2,
            waveform="sine",
            gain=lerp(0.2, 0.08, lt),
        ),
    )


# -----------------------------------------------------------------------------
# Kandinsky: direction, sharpness, space
# -----------------------------------------------------------------------------

KANDINSKY_CARRIER_ANCHORS: tuple[Anchor, ...] = (
    Anchor(0, 330),  # red
    Anchor(30, 392),  # orange
    Anchor(60, 880),  # yellow: piercing high
    Anchor(120, 262),  # green
    Anchor(240, 82),  # blue: deep low
    Anchor(270, 311),  # purple
    Anchor(330, 330),
)

# Roughly sqrt(2); used across the purple band for an unstable, tritone-like color.
TRITONE_RATIO = 1.414


def kandinsky_waveform(hue: float) -> Waveform:
    if hue < 90 or hue > 300:
        return "sawtooth"
    if hue < 180:
        return "triangle"
    return "sine"


def kandinsky_map(hue: float, lightness: float) -> SynthParams:
    """Two operators at non-integer ratios over a hue-dependent carrier shape.

    Toward white the attack blunts and the tail stretches out.
    """
    check_color(hue, lightness)
    carrier_freq = lerp_anchors(KANDINSKY_CARRIER_ANCHORS, hue)
    lt = lightness_factor(lightness)
    position = hue / HUE_MAX

    ratio1 = TRITONE_RATIO if 240 < hue < 300 else lerp(1.5, 3.0, position)
    # The .01 offset keeps the ratio off the harmonic series.
    ratio2 = lerp(3.01, 7.01, position)

    return SynthParams(
        carrier_freq=carrier_freq,
        carrier_waveform=kandinsky_waveform(hue),
        operators=(
            Operator(ratio=ratio1, index=lerp(8.0, 2.0, lt), index_decay=lerp(0.15, 0.5, lt)),
            Operator(ratio=ratio2, index=lerp(5.0, 1.0, lt), index_decay=lerp(0.2, 0.6, lt)),
        ),
        envelope=Envelope(
            attack=lerp(0.005, 0.2, lt),
            decay=lerp(0.08, 0.5, lt),
            sustain=lerp(0.3, 0.7, lt),
            release=lerp(0.2, 1.5, lt),
        ),
        duration=lerp(1.0, 4.0, lt),
    )


MODELS: Mapping[ModelKey, ColorModel] = MappingProxyType(
    {
        "messiaen": ColorModel(
            key="messiaen",
            name="Messiaen",
            description="Layered, luminous, harmony-derived",
            map_color=messiaen_map,
        ),
        "kandinsky": ColorModel(
            key="kandinsky",
            name="Kandinsky",
            description="Direction, sharpness, space",
            map_color=kandinsky_map,
        ),
    }
)


def get_model(key: str) -> ColorModel:
    try:
        return MODELS[key]  # type: ignore[index]
    except KeyError as exc:
        raise UnknownModelError(
            f"Unknown model: {key!r}. Valid: {list(MODELS.keys())}"
        ) from exc


def map_color(key: str, hue: float, lightness: float) -> SynthParams:
    """Resolve a registry entry and map one color sample through it."""
    model = get_model(key)
    params = model.map_color(hue, lightness)
    _LOGGER.debug(
        "%s mapped hue=%.2f lightness=%.2f to carrier=%.2fHz (%s), %d operators",
        model.name,
        hue,
        lightness,
        params.carrier_freq,
        params.carrier_waveform,
        len(params.operators),
    )
    return params
