from __future__ import annotations

import os
import sys
import tempfile
import threading
import time
import types
from typing import Any

# Keep test runs from writing into the user's cache directory.
os.environ.setdefault("SYNESTHESIA_LOG_DIR", tempfile.mkdtemp(prefix="synesthesia-logs-"))

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from synesthesia.config import EngineSettings  # noqa: E402


def _op(ratio: float, index: float, decay: float) -> dict[str, Any]:
    return {"ratio": ratio, "index": index, "waveform": "sine", "index_decay": decay}


def _env(attack: float, decay: float, sustain: float, release: float) -> dict[str, float]:
    return {"attack": attack, "decay": decay, "sustain": sustain, "release": release}


# Hand-tuned presets from the button-based prototype; the continuous models
# replaced them, they stay here as realistic engine inputs.
STATIC_PALETTES: dict[str, dict[str, dict[str, Any]]] = {
    "messiaen": {
        "red": {
            "carrier_freq": 220,
            "operators": [_op(2, 3.5, 0.4), _op(4, 2.0, 0.6), _op(6, 1.0, 0.5)],
            "envelope": _env(0.08, 0.3, 0.6, 0.8),
            "duration": 2.5,
            "sub": {"freq": 110, "waveform": "sine", "gain": 0.15},
        },
        "orange": {
            "carrier_freq": 277.18,
            "operators": [_op(2, 4.0, 0.5), _op(3, 2.5, 0.6)],
            "envelope": _env(0.06, 0.25, 0.65, 0.7),
            "duration": 2.2,
            "sub": {"freq": 138.59, "waveform": "sine", "gain": 0.18},
        },
        "yellow": {
            "carrier_freq": 440,
            "operators": [_op(1, 5.0, 0.3), _op(3, 3.0, 0.4), _op(5, 1.5, 0.5)],
            "envelope": _env(0.03, 0.2, 0.7, 0.6),
            "duration": 2.0,
            "sub": {"freq": 220, "waveform": "sine", "gain": 0.2},
        },
        "green": {
            "carrier_freq": 329.63,
            "operators": [_op(2, 2.5, 0.6), _op(4, 1.5, 0.7)],
            "envelope": _env(0.1, 0.35, 0.55, 0.9),
            "duration": 2.8,
            "sub": {"freq": 164.81, "waveform": "sine", "gain": 0.12},
        },
        "blue": {
            "carrier_freq": 196,
            "operators": [_op(2, 4.5, 0.7), _op(3, 3.0, 0.8), _op(5, 1.2, 0.9)],
            "envelope": _env(0.15, 0.4, 0.5, 1.2),
            "duration": 3.5,
            "sub": {"freq": 98, "waveform": "sine", "gain": 0.2},
        },
        "purple": {
            "carrier_freq": 261.63,
            "operators": [_op(2, 3.8, 0.5), _op(4, 2.2, 0.6), _op(7, 0.8, 0.8)],
            "envelope": _env(0.12, 0.35, 0.55, 1.0),
            "duration": 3.0,
            "sub": {"freq": 130.81, "waveform": "sine", "gain": 0.15},
        },
        "white": {
            "carrier_freq": 523.25,
            "operators": [_op(1, 2.0, 0.3), _op(2, 1.5, 0.4), _op(3, 1.0, 0.5)],
            "envelope": _env(0.05, 0.3, 0.4, 1.0),
            "duration": 2.5,
            "sub": {"freq": 261.63, "waveform": "sine", "gain": 0.1},
        },
    },
    "kandinsky": {
        "red": {
            "carrier_freq": 330,
            "carrier_waveform": "sawtooth",
            "operators": [_op(1.5, 6.0, 0.2), _op(3.01, 3.0, 0.3)],
            "envelope": _env(0.01, 0.15, 0.4, 0.3),
            "duration": 1.5,
        },
        "orange": {
            "carrier_freq": 392,
            "carrier_waveform": "triangle",
            "operators": [_op(2.5, 5.0, 0.25), _op(4.01, 2.5, 0.3)],
            "envelope": _env(0.015, 0.12, 0.45, 0.35),
            "duration": 1.4,
        },
        "yellow": {
            "carrier_freq": 880,
            "carrier_waveform": "sawtooth",
            "operators": [_op(3.0, 8.0, 0.15), _op(7.01, 4.0, 0.2)],
            "envelope": _env(0.005, 0.08, 0.3, 0.2),
            "duration": 1.0,
        },
        "green": {
            "carrier_freq": 262,
            "carrier_waveform": "triangle",
            "operators": [_op(2.0, 3.5, 0.4), _op(5.0, 1.5, 0.5)],
            "envelope": _env(0.03, 0.2, 0.5, 0.5),
            "duration": 1.8,
        },
        "blue": {
            "carrier_freq": 82.41,
            "carrier_waveform": "sine",
            "operators": [_op(1.0, 2.0, 0.8), _op(2.0, 1.5, 0.9)],
            "envelope": _env(0.2, 0.5, 0.7, 1.5),
            "duration": 4.0,
        },
        "purple": {
            "carrier_freq": 311.13,
            "carrier_waveform": "sawtooth",
            "operators": [_op(1.414, 7.0, 0.15), _op(5.1, 5.0, 0.2)],
            "envelope": _env(0.008, 0.1, 0.35, 0.4),
            "duration": 1.6,
        },
        "white": {
            "carrier_freq": 523.25,
            "carrier_waveform": "triangle",
            "operators": [_op(1.0, 1.5, 0.5), _op(2.0, 1.0, 0.6)],
            "envelope": _env(0.02, 0.15, 0.5, 0.4),
            "duration": 1.5,
        },
    },
}


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def fast_settings() -> EngineSettings:
    """Low sample rate for tests that render whole voices."""
    return EngineSettings(sample_rate=8_000, block_size=64)


class FakeOutputStream:
    """Stands in for ``sounddevice.OutputStream``.

    With ``pump`` set, a thread pulls blocks from the callback like PortAudio would.
    """

    pump = False

    def __init__(self, *, samplerate: int, blocksize: int, channels: int, dtype: str, callback: Any) -> None:
        self.samplerate = samplerate
        self.blocksize = blocksize
        self.channels = channels
        self.dtype = dtype
        self.callback = callback
        self.started = False
        self.stopped = False
        self.closed = False
        self.blocks = 0
        self._halt = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self.started = True
        if self.pump:
            self._thread = threading.Thread(target=self._pump, daemon=True)
            self._thread.start()

    def _pump(self) -> None:
        out = np.zeros((self.blocksize, self.channels), dtype=np.float32)
        while not self._halt.is_set():
            self.callback(out, self.blocksize, None, None)
            self.blocks += 1
            time.sleep(0.0005)

    def stop(self) -> None:
        self._halt.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self.stopped = True

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_sounddevice(monkeypatch) -> list[FakeOutputStream]:
    """Install a fake ``sounddevice`` module; returns the streams it opens."""
    streams: list[FakeOutputStream] = []

    def _output_stream(**kwargs: Any) -> FakeOutputStream:
        stream = FakeOutputStream(**kwargs)
        streams.append(stream)
        return stream

    module = types.ModuleType("sounddevice")
    module.OutputStream = _output_stream  # type: ignore[attr-defined]
    monkeypatch.setitem(sys.modules, "sounddevice", module)
    return streams


@pytest.fixture
def pumping_sounddevice(fake_sounddevice, monkeypatch) -> list[FakeOutputStream]:
    """Like ``fake_sounddevice`` but every stream renders continuously once started."""
    monkeypatch.setattr(FakeOutputStream, "pump", True)
    return fake_sounddevice
