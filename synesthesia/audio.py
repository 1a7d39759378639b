from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float32]
AudioNumbers = NDArray[np.floating[Any]] | Sequence[float] | FloatArray

SAMPLE_RATE = 44_100


def ensure_audio_contract(audio: AudioNumbers) -> FloatArray:
    """Normalize dtype/shape to mono float32 and pull peaks above 1.0 back to full scale."""

    mono: FloatArray = np.asarray(audio, dtype=np.float32).reshape(-1)
    if mono.size == 0:
        return mono
    peak = float(np.max(np.abs(mono)))
    if peak > 1.0:
        mono = mono / peak
    return mono


def hard_clip(audio: AudioNumbers) -> FloatArray:
    """Clip to [-1, 1] without rescaling; used for live blocks."""

    return np.clip(np.asarray(audio, dtype=np.float32).reshape(-1), -1.0, 1.0)
