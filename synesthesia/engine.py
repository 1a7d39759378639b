"""
Voice engine: turns one SynthParams into a disposable FM signal graph.

Graph per voice::

    op[0] -> op[1] -> ... -> op[n-1] -> carrier.frequency
    carrier -> voice gain (ADSR) -> master bus -> destination
    sub -> sub gain (ADSR * sub gain) -> master bus

Every time point is handed to the context's automation timelines up front;
the only deferred work is the per-voice teardown task.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Callable

import numpy as np

from .audio import FloatArray, ensure_audio_contract
from .config import EngineSettings, load_settings
from .graph import AudioContext, AudioNode, AudioParam, GainNode, OscillatorNode
from .params import Envelope, SynthParams
from .scheduler import ScheduledTask

_LOGGER = logging.getLogger("synesthesia.engine")

ContextFactory = Callable[[EngineSettings], AudioContext]
EnvelopeTimes = tuple[float, float, float, float, float]


def offline_context_factory(settings: EngineSettings) -> AudioContext:
    """Context whose clock only moves when someone renders it."""
    return AudioContext(sample_rate=settings.sample_rate, block_size=settings.block_size)


def envelope_times(now: float, envelope: Envelope, duration: float) -> EnvelopeTimes:
    """Start, peak, sustain, release-start and end times, never decreasing."""
    start = now
    peak = max(start, now + envelope.attack)
    sustain = max(peak, now + envelope.attack + envelope.decay)
    release = max(sustain, now + duration - envelope.release)
    end = max(release, now + duration)
    return (start, peak, sustain, release, end)


def schedule_envelope(param: AudioParam, times: EnvelopeTimes, *, level: float, sustain: float) -> None:
    start, peak, sustain_at, release_at, end = times
    param.set_value_at_time(0.0, start)
    param.linear_ramp_to_value_at_time(level, peak)
    param.linear_ramp_to_value_at_time(level * sustain, sustain_at)
    param.set_value_at_time(level * sustain, release_at)
    param.linear_ramp_to_value_at_time(0.0, end)


@dataclass(slots=True)
class VoiceRecord:
    """Live handles for one in-flight voice."""

    voice_id: int
    params: SynthParams
    started_at: float
    ends_at: float
    envelope: EnvelopeTimes
    gain: GainNode
    carrier: OscillatorNode
    # (oscillator, depth gain) in operator order
    modulators: tuple[tuple[OscillatorNode, GainNode], ...]
    sub: tuple[OscillatorNode, GainNode] | None = None
    disposal: ScheduledTask | None = None

    def nodes(self) -> Iterator[AudioNode]:
        yield self.gain
        yield self.carrier
        for oscillator, depth in self.modulators:
            yield oscillator
            yield depth
        if self.sub is not None:
            yield from self.sub


class VoiceEngine:
    """Owns the master bus and every voice scheduled on it.

    ``init`` is idempotent and called lazily by ``play``; ``shutdown`` releases
    the context so the engine can be initialized again.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        context_factory: ContextFactory | None = None,
    ) -> None:
        self._settings = settings if settings is not None else load_settings()
        self._context_factory = context_factory or offline_context_factory
        self._context: AudioContext | None = None
        self._master: GainNode | None = None
        self._voices: dict[int, VoiceRecord] = {}
        self._voice_ids = itertools.count(1)
        self._restore_task: ScheduledTask | None = None

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def initialized(self) -> bool:
        return self._context is not None

    @property
    def context(self) -> AudioContext | None:
        return self._context

    @property
    def master(self) -> GainNode | None:
        return self._master

    @property
    def voices(self) -> tuple[VoiceRecord, ...]:
        context = self._context
        if context is None:
            return tuple(self._voices.values())
        # Disposal runs on the rendering thread.
        with context.lock:
            return tuple(self._voices.values())

    def init(self) -> AudioContext:
        context, _ = self._open()
        return context

    def play(self, params: SynthParams) -> None:
        context, master = self._open()
        with context.lock:
            record = self._build_voice(context, master, params)
            self._voices[record.voice_id] = record
        _LOGGER.debug(
            "Voice %d: %.2fHz %s, %d operators, %.2fs%s",
            record.voice_id,
            params.carrier_freq,
            params.carrier_waveform,
            len(params.operators),
            params.duration,
            " + sub" if record.sub is not None else "",
        )

    def stop_all(self) -> None:
        """Fade the master bus out and bring it back; voices keep running silently."""
        context, master = self._context, self._master
        if context is None or master is None:
            return
        settings = self._settings
        with context.lock:
            now = context.current_time
            master.gain.cancel_and_hold_at_time(now)
            master.gain.linear_ramp_to_value_at_time(0.0, now + settings.stop_fade)
            if self._restore_task is not None:
                self._restore_task.cancel()
            self._restore_task = context.tasks.schedule(
                now + settings.stop_restore_delay,
                self._restore_master,
                label="restore master",
            )
        _LOGGER.debug("stop_all at %.3fs", now)

    def shutdown(self) -> None:
        context, master = self._context, self._master
        if context is None:
            return
        with context.lock:
            for record in self._voices.values():
                if record.disposal is not None:
                    record.disposal.cancel()
                for node in record.nodes():
                    node.disconnect()
            self._voices.clear()
            if self._restore_task is not None:
                self._restore_task.cancel()
                self._restore_task = None
            if master is not None:
                master.disconnect()
        context.close()
        self._context = None
        self._master = None
        _LOGGER.info("Audio engine shut down")

    def _open(self) -> tuple[AudioContext, GainNode]:
        if self._context is not None and self._master is not None:
            return self._context, self._master
        context = self._context_factory(self._settings)
        with context.lock:
            master = context.create_gain(self._settings.master_level)
            master.connect(context.destination)
        self._context = context
        self._master = master
        _LOGGER.info(
            "Audio engine ready (sr=%d, block=%d, master=%.2f)",
            context.sample_rate,
            context.block_size,
            self._settings.master_level,
        )
        return context, master

    def _build_voice(self, context: AudioContext, master: GainNode, params: SynthParams) -> VoiceRecord:
        settings = self._settings
        now = context.current_time
        duration = params.duration
        carrier_freq = params.carrier_freq
        envelope = params.envelope
        times = envelope_times(now, envelope, duration)

        voice_gain = context.create_gain(0.0)
        schedule_envelope(voice_gain.gain, times, level=1.0, sustain=envelope.sustain)
        voice_gain.connect(master)

        carrier = context.create_oscillator(params.carrier_waveform, carrier_freq)
        carrier.frequency.set_value_at_time(carrier_freq, now)
        carrier.connect(voice_gain)

        # Last operator drives the carrier; each earlier one drives the next modulator.
        modulators: list[tuple[OscillatorNode, GainNode]] = []
        target = carrier.frequency
        for operator in reversed(params.operators):
            mod_freq = operator.frequency(carrier_freq)
            depth = operator.depth(carrier_freq)

            modulator = context.create_oscillator(operator.waveform, mod_freq)
            modulator.frequency.set_value_at_time(mod_freq, now)

            depth_gain = context.create_gain(depth)
            depth_gain.gain.set_value_at_time(depth, now)
            if operator.index_decay and depth > 0:
                depth_gain.gain.exponential_ramp_to_value_at_time(
                    depth * operator.index_decay,
                    now + duration * settings.index_decay_point,
                )

            modulator.connect(depth_gain)
            depth_gain.connect(target)
            target = modulator.frequency
            modulators.append((modulator, depth_gain))
        modulators.reverse()

        sub_branch: tuple[OscillatorNode, GainNode] | None = None
        if params.sub is not None:
            sub = params.sub
            sub_freq = sub.resolved_freq(carrier_freq)
            sub_osc = context.create_oscillator(sub.resolved_waveform(), sub_freq)
            sub_osc.frequency.set_value_at_time(sub_freq, now)
            sub_gain = context.create_gain(0.0)
            schedule_envelope(
                sub_gain.gain,
                times,
                level=sub.resolved_gain(settings.sub_gain_default),
                sustain=envelope.sustain,
            )
            sub_osc.connect(sub_gain)
            sub_gain.connect(master)
            sub_branch = (sub_osc, sub_gain)

        end = now + duration
        oscillators = [carrier, *(osc for osc, _ in modulators)]
        if sub_branch is not None:
            oscillators.append(sub_branch[0])
        for oscillator in oscillators:
            oscillator.start(now)
            oscillator.stop(end)

        record = VoiceRecord(
            voice_id=next(self._voice_ids),
            params=params,
            started_at=now,
            ends_at=end,
            envelope=times,
            gain=voice_gain,
            carrier=carrier,
            modulators=tuple(modulators),
            sub=sub_branch,
        )
        record.disposal = context.tasks.schedule(
            end + settings.disposal_grace,
            lambda voice_id=record.voice_id: self._dispose(voice_id),
            label=f"dispose voice {record.voice_id}",
        )
        return record

    def _dispose(self, voice_id: int) -> None:
        record = self._voices.pop(voice_id, None)
        if record is None:
            return
        for node in record.nodes():
            node.disconnect()
        _LOGGER.debug("Voice %d disposed", voice_id)

    def _restore_master(self) -> None:
        context, master = self._context, self._master
        if context is None or master is None:
            return
        master.gain.set_value_at_time(self._settings.master_level, context.current_time)
        self._restore_task = None


def render(params: SynthParams, *, settings: EngineSettings | None = None) -> FloatArray:
    """Play one voice on a private offline engine and return its samples.

    Covers the audible window plus the disposal grace period. Nothing is
    written to disk.
    """
    engine = VoiceEngine(settings)
    context = engine.init()
    try:
        engine.play(params)
        seconds = params.duration + engine.settings.disposal_grace
        audio = context.render(int(np.ceil(seconds * context.sample_rate)))
    finally:
        engine.shutdown()
    return ensure_audio_contract(audio)
