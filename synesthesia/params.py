from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Waveform = Literal["sine", "triangle", "sawtooth", "square"]
WAVEFORMS: tuple[Waveform, ...] = ("sine", "triangle", "sawtooth", "square")

DEFAULT_SUB_GAIN = 0.2


class Operator(BaseModel):
    """One FM modulator: frequency ratio, depth index and optional depth decay."""

    ratio: float = Field(gt=0)
    index: float = Field(ge=0)
    waveform: Waveform = "sine"
    # Fraction of the starting depth left at 70% of the voice duration.
    index_decay: float | None = Field(default=None, ge=0, le=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def frequency(self, carrier_freq: float) -> float:
        return carrier_freq * self.ratio

    def depth(self, carrier_freq: float) -> float:
        """Peak frequency deviation (Hz) this operator applies to its target."""
        return self.frequency(carrier_freq) * self.index


class Envelope(BaseModel):
    attack: float = Field(ge=0)
    decay: float = Field(ge=0)
    sustain: float = Field(ge=0, le=1)
    release: float = Field(ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class SubOscillator(BaseModel):
    """Independent layer mixed straight into the master bus."""

    freq: float | None = Field(default=None, gt=0)
    waveform: Waveform | None = None
    gain: float | None = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def resolved_freq(self, carrier_freq: float) -> float:
        return self.freq if self.freq is not None else carrier_freq / 2

    def resolved_waveform(self) -> Waveform:
        return self.waveform if self.waveform is not None else "sine"

    def resolved_gain(self, default: float = DEFAULT_SUB_GAIN) -> float:
        return self.gain if self.gain is not None else default


class SynthParams(BaseModel):
    """Complete description of one FM voice, produced by a color model."""

    carrier_freq: float = Field(gt=0)
    carrier_waveform: Waveform = "sine"
    operators: tuple[Operator, ...] = ()
    envelope: Envelope
    duration: float = Field(gt=0)
    sub: SubOscillator | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")
