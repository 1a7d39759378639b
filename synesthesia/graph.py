# pyright: reportUnknownMemberType=false

"""
Pull-based signal graph with sample-accurate parameter automation.

Nodes:

1. AudioParam: a scalar with a timeline of set/linear/exponential events plus
   audio-rate inputs summed on top (this is how FM modulators attach)
2. OscillatorNode / GainNode: the two primitives a voice is built from
3. AudioContext: owns the clock, the destination sink and the deferred-task
   queue; rendering a block advances the clock and runs due tasks
"""

from __future__ import annotations

import bisect
import logging
import math
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Callable, Literal, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .audio import SAMPLE_RATE, FloatArray
from .params import Waveform
from .scheduler import TaskQueue

_LOGGER = logging.getLogger("synesthesia.graph")

DEFAULT_BLOCK_SIZE = 128

Signal: TypeAlias = NDArray[np.float64]
EventKind = Literal["set", "linear", "exponential"]


@dataclass(frozen=True, slots=True)
class Block:
    index: int
    times: Signal
    sample_rate: int

    @property
    def size(self) -> int:
        return int(self.times.size)


@dataclass(frozen=True, slots=True)
class AutomationEvent:
    kind: EventKind
    time: float
    value: float


# =============================================================================
# PARAMETERS
# =============================================================================


class AudioParam:
    """Automatable value. Events are kept sorted by time, ties in insertion order."""

    def __init__(self, name: str, default_value: float, *, origin: float = 0.0) -> None:
        self.name = name
        self._default = float(default_value)
        self._origin = origin
        self._events: list[AutomationEvent] = []
        self._inputs: list[AudioNode] = []

    def __repr__(self) -> str:
        return f"AudioParam({self.name!r}, default={self._default}, events={len(self._events)})"

    @property
    def default_value(self) -> float:
        return self._default

    @property
    def events(self) -> tuple[AutomationEvent, ...]:
        return tuple(self._events)

    @property
    def inputs(self) -> tuple[AudioNode, ...]:
        return tuple(self._inputs)

    def set_value_at_time(self, value: float, time: float) -> AudioParam:
        self._insert(AutomationEvent("set", time, float(value)))
        return self

    def linear_ramp_to_value_at_time(self, value: float, time: float) -> AudioParam:
        self._insert(AutomationEvent("linear", time, float(value)))
        return self

    def exponential_ramp_to_value_at_time(self, value: float, time: float) -> AudioParam:
        if value == 0:
            raise ValueError(f"{self.name}: exponential ramp target must be non-zero")
        self._insert(AutomationEvent("exponential", time, float(value)))
        return self

    def cancel_scheduled_values(self, time: float) -> AudioParam:
        """Drop every event at or after ``time``."""
        self._events = [event for event in self._events if event.time < time]
        return self

    def cancel_and_hold_at_time(self, time: float) -> AudioParam:
        """Freeze the value reached at ``time`` and forget the timeline.

        Everything before ``time`` collapses into the new default, so the
        event list stays bounded however often the param is re-pinned.
        """
        value = self.value_at(time)
        self._events = []
        self._default = value
        self._origin = time
        self._insert(AutomationEvent("set", time, value))
        return self

    def value_at(self, time: float) -> float:
        return float(self.values(np.array([time], dtype=np.float64))[0])

    def values(self, times: Signal) -> Signal:
        """Evaluate the automation timeline (without audio-rate inputs) at ``times``."""
        out = np.full(times.shape, self._default, dtype=np.float64)
        prev_time, prev_value = self._origin, self._default
        for event in self._events:
            if event.kind != "set" and event.time > prev_time:
                mask = (times >= prev_time) & (times < event.time)
                if np.any(mask):
                    frac = (times[mask] - prev_time) / (event.time - prev_time)
                    out[mask] = _ramp(event.kind, prev_value, event.value, frac)
            out[times >= event.time] = event.value
            prev_time, prev_value = event.time, event.value
        return out

    def compute(self, block: Block) -> Signal:
        """Automation plus the summed output of every node connected to this param."""
        signal = self.values(block.times)
        for node in self._inputs:
            signal = signal + node.output(block)
        return signal

    def _insert(self, event: AutomationEvent) -> None:
        if not math.isfinite(event.time) or event.time < 0:
            raise ValueError(f"{self.name}: event time must be finite and >= 0, got {event.time!r}")
        if not math.isfinite(event.value):
            raise ValueError(f"{self.name}: event value must be finite, got {event.value!r}")
        times = [existing.time for existing in self._events]
        self._events.insert(bisect.bisect_right(times, event.time), event)


def _ramp(kind: EventKind, start: float, end: float, frac: Signal) -> Signal:
    if kind == "linear":
        return start + (end - start) * frac
    # Exponential ramps cannot leave zero or cross it; hold the start value.
    if start == 0 or (start > 0) != (end > 0):
        return np.full(frac.shape, start, dtype=np.float64)
    return start * np.power(end / start, frac)


# =============================================================================
# NODES
# =============================================================================


class AudioNode:
    def __init__(self, context: AudioContext) -> None:
        self.context = context
        self._inputs: list[AudioNode] = []
        self._outputs: list[AudioNode | AudioParam] = []
        self._cached_block = -1
        self._cached: Signal | None = None

    @property
    def inputs(self) -> tuple[AudioNode, ...]:
        return tuple(self._inputs)

    @property
    def outputs(self) -> tuple[AudioNode | AudioParam, ...]:
        return tuple(self._outputs)

    def connect(self, target: AudioNode | AudioParam) -> AudioNode | AudioParam:
        if target in self._outputs:
            return target
        target._inputs.append(self)
        self._outputs.append(target)
        return target

    def disconnect(self) -> None:
        for target in self._outputs:
            if self in target._inputs:
                target._inputs.remove(self)
        self._outputs.clear()

    def output(self, block: Block) -> Signal:
        if self._cached_block != block.index or self._cached is None:
            self._cached = self._process(block)
            self._cached_block = block.index
        return self._cached

    def _mix_inputs(self, block: Block) -> Signal:
        mixed = np.zeros(block.size, dtype=np.float64)
        for node in self._inputs:
            mixed += node.output(block)
        return mixed

    def _process(self, block: Block) -> Signal:
        return self._mix_inputs(block)


class AudioDestinationNode(AudioNode):
    """Final sink; its output is what the context hands to the speaker."""


class GainNode(AudioNode):
    def __init__(self, context: AudioContext, gain: float = 1.0) -> None:
        super().__init__(context)
        self.gain = AudioParam("gain", gain, origin=context.current_time)

    def _process(self, block: Block) -> Signal:
        if not self._inputs:
            return np.zeros(block.size, dtype=np.float64)
        return self._mix_inputs(block) * self.gain.compute(block)


class OscillatorNode(AudioNode):
    """Phase-accumulating oscillator.

    The instantaneous frequency is the frequency param's automation plus any
    modulator output connected to it, so FM depth is expressed in Hz.
    """

    def __init__(
        self,
        context: AudioContext,
        waveform: Waveform = "sine",
        frequency: float = 440.0,
    ) -> None:
        super().__init__(context)
        if waveform not in _WAVE_FNS:
            raise ValueError(f"Unknown waveform: {waveform}. Valid: {list(_WAVE_FNS)}")
        self.waveform: Waveform = waveform
        self.frequency = AudioParam("frequency", frequency, origin=context.current_time)
        self._start_time: float | None = None
        self._stop_time: float | None = None
        self._phase = 0.0

    @property
    def start_time(self) -> float | None:
        return self._start_time

    @property
    def stop_time(self) -> float | None:
        return self._stop_time

    def start(self, when: float) -> None:
        if self._start_time is not None:
            raise RuntimeError("oscillator can only be started once")
        self._start_time = when

    def stop(self, when: float) -> None:
        if self._start_time is None:
            raise RuntimeError("oscillator must be started before it is stopped")
        self._stop_time = max(when, self._start_time)

    def _process(self, block: Block) -> Signal:
        times = block.times
        silent = np.zeros(block.size, dtype=np.float64)
        if self._start_time is None or times[-1] < self._start_time:
            return silent
        if self._stop_time is not None and times[0] >= self._stop_time:
            return silent

        active = times >= self._start_time
        if self._stop_time is not None:
            active &= times < self._stop_time

        increments = np.where(active, self.frequency.compute(block) / block.sample_rate, 0.0)
        # Phase at each sample is the accumulated increments of the samples before it.
        accumulated = np.cumsum(increments)
        phase = np.mod(self._phase + accumulated - increments, 1.0)
        self._phase = float(np.mod(self._phase + accumulated[-1], 1.0))

        wave = _WAVE_FNS[self.waveform](phase, np.abs(increments))
        return np.where(active, wave, 0.0)


# -----------------------------------------------------------------------------
# Waveforms (phase in cycles, dt = phase increment per sample)
# -----------------------------------------------------------------------------


def _poly_blep(phase: Signal, dt: Signal) -> Signal:
    """2-point PolyBLEP residual for a unit step at phase 0."""
    dt = np.clip(dt, 1e-12, 0.5)
    correction = np.zeros_like(phase)

    m1 = phase < dt
    x1 = phase[m1] / dt[m1]
    correction[m1] = x1 + x1 - x1 * x1 - 1.0

    m2 = phase > 1.0 - dt
    x2 = (phase[m2] - 1.0) / dt[m2]
    correction[m2] = x2 * x2 + x2 + x2 + 1.0
    return correction


def _sine(phase: Signal, dt: Signal) -> Signal:
    _ = dt
    return np.sin(2 * np.pi * phase)


def _triangle(phase: Signal, dt: Signal) -> Signal:
    _ = dt
    return 4.0 * np.abs(np.mod(phase + 0.75, 1.0) - 0.5) - 1.0


def _sawtooth(phase: Signal, dt: Signal) -> Signal:
    return 2.0 * phase - 1.0 - _poly_blep(phase, dt)


def _square(phase: Signal, dt: Signal) -> Signal:
    naive = np.where(phase < 0.5, 1.0, -1.0)
    return naive + _poly_blep(phase, dt) - _poly_blep(np.mod(phase + 0.5, 1.0), dt)


_WAVE_FNS: dict[str, Callable[[Signal, Signal], Signal]] = {
    "sine": _sine,
    "triangle": _triangle,
    "sawtooth": _sawtooth,
    "square": _square,
}


# =============================================================================
# CONTEXT
# =============================================================================


class AudioContext:
    """Clock, destination and task queue for one graph.

    ``render`` is the only thing that moves time forward. The lock must be held
    by anyone mutating the graph while another thread may be rendering it.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        if sample_rate <= 0 or block_size <= 0:
            raise ValueError("sample_rate and block_size must be positive")
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.lock = threading.RLock()
        self.tasks = TaskQueue()
        self.destination = AudioDestinationNode(self)
        self._frame = 0
        self._block_index = 0
        self._closed = False
        self._close_hooks: list[Callable[[], None]] = []

    @property
    def current_time(self) -> float:
        return self._frame / self.sample_rate

    @property
    def closed(self) -> bool:
        return self._closed

    def create_oscillator(self, waveform: Waveform = "sine", frequency: float = 440.0) -> OscillatorNode:
        self._check_open()
        return OscillatorNode(self, waveform, frequency)

    def create_gain(self, gain: float = 1.0) -> GainNode:
        self._check_open()
        return GainNode(self, gain)

    def add_close_hook(self, hook: Callable[[], None]) -> None:
        self._close_hooks.append(hook)

    def render(self, frames: int) -> FloatArray:
        """Pull ``frames`` samples from the destination, running due tasks per block."""
        if frames < 0:
            raise ValueError("frames must be >= 0")
        with self.lock:
            self._check_open()
            return np.concatenate(list(self._iter_blocks(frames)) or [np.zeros(0)]).astype(np.float32)

    def advance(self, seconds: float) -> None:
        """Render and discard ``seconds`` of audio."""
        self.render(int(round(seconds * self.sample_rate)))

    def close(self) -> None:
        if self._closed:
            return
        # Hooks may stop a stream whose callback needs the lock; run them first.
        hooks, self._close_hooks = self._close_hooks, []
        for hook in hooks:
            hook()
        with self.lock:
            cancelled = self.tasks.cancel_all()
            self._closed = True
            _LOGGER.debug("Audio context closed at %.3fs (%d tasks cancelled)", self.current_time, cancelled)

    def _iter_blocks(self, frames: int) -> Iterator[Signal]:
        remaining = frames
        while remaining > 0:
            size = min(self.block_size, remaining)
            times = (self._frame + np.arange(size, dtype=np.float64)) / self.sample_rate
            block = Block(index=self._block_index, times=times, sample_rate=self.sample_rate)
            yield self.destination.output(block)
            self._frame += size
            self._block_index += 1
            remaining -= size
            self.tasks.run_due(self.current_time)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("audio context is closed")
