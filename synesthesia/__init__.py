from __future__ import annotations

from .audio import SAMPLE_RATE
from .config import EngineSettings, load_settings
from .engine import VoiceEngine, VoiceRecord, envelope_times, render
from .errors import (
    AudioUnavailableError,
    InvalidColorError,
    InvalidSettingsError,
    SynesthesiaError,
    UnknownModelError,
)
from .interpolation import Anchor, lerp, lerp_anchors
from .logging_utils import configure_logging as _configure_logging
from .models import (
    DEFAULT_MODEL,
    MODEL_KEYS,
    MODELS,
    ColorModel,
    ModelKey,
    get_model,
    kandinsky_map,
    map_color,
    messiaen_map,
)
from .params import Envelope, Operator, SubOscillator, SynthParams, Waveform

__all__ = [
    "SAMPLE_RATE",
    "Anchor",
    "AudioUnavailableError",
    "ColorModel",
    "DEFAULT_MODEL",
    "EngineSettings",
    "Envelope",
    "InvalidColorError",
    "InvalidSettingsError",
    "MODELS",
    "MODEL_KEYS",
    "ModelKey",
    "Operator",
    "SubOscillator",
    "SynesthesiaError",
    "SynthParams",
    "UnknownModelError",
    "VoiceEngine",
    "VoiceRecord",
    "Waveform",
    "envelope_times",
    "get_model",
    "kandinsky_map",
    "lerp",
    "lerp_anchors",
    "load_settings",
    "map_color",
    "messiaen_map",
    "render",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
