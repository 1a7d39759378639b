import numpy as np
import pytest

from synesthesia.graph import AudioContext, AudioParam


class TestAudioParam:
    def test_default_value_without_events(self) -> None:
        param = AudioParam("gain", 0.3)
        assert param.value_at(0.0) == pytest.approx(0.3)
        assert param.value_at(10.0) == pytest.approx(0.3)

    def test_set_then_linear_ramp(self) -> None:
        param = AudioParam("gain", 0.0)
        param.set_value_at_time(0.0, 1.0)
        param.linear_ramp_to_value_at_time(1.0, 2.0)
        assert param.value_at(0.5) == pytest.approx(0.0)
        assert param.value_at(1.5) == pytest.approx(0.5)
        assert param.value_at(2.0) == pytest.approx(1.0)
        assert param.value_at(3.0) == pytest.approx(1.0)

    def test_exponential_ramp_is_geometric(self) -> None:
        param = AudioParam("depth", 100.0)
        param.set_value_at_time(100.0, 0.0)
        param.exponential_ramp_to_value_at_time(25.0, 1.0)
        assert param.value_at(0.5) == pytest.approx(50.0)
        assert param.value_at(0.25) == pytest.approx(100.0 * 0.25**0.25)
        assert param.value_at(1.0) == pytest.approx(25.0)

    def test_exponential_ramp_rejects_zero_target(self) -> None:
        param = AudioParam("depth", 1.0)
        with pytest.raises(ValueError):
            param.exponential_ramp_to_value_at_time(0.0, 1.0)

    def test_exponential_ramp_from_zero_holds(self) -> None:
        param = AudioParam("depth", 0.0)
        param.set_value_at_time(0.0, 0.0)
        param.exponential_ramp_to_value_at_time(1.0, 1.0)
        assert param.value_at(0.9) == 0.0
        assert param.value_at(1.0) == 1.0

    def test_rejects_negative_or_non_finite_time(self) -> None:
        param = AudioParam("gain", 1.0)
        with pytest.raises(ValueError):
            param.set_value_at_time(1.0, -0.1)
        with pytest.raises(ValueError):
            param.linear_ramp_to_value_at_time(1.0, float("inf"))

    def test_events_sorted_with_ties_in_insertion_order(self) -> None:
        param = AudioParam("gain", 0.0)
        param.set_value_at_time(0.7, 2.0)
        param.set_value_at_time(0.2, 1.0)
        param.set_value_at_time(0.4, 1.0)
        assert [(event.time, event.value) for event in param.events] == [(1.0, 0.2), (1.0, 0.4), (2.0, 0.7)]
        assert param.value_at(1.5) == pytest.approx(0.4)

    def test_zero_length_ramp_jumps(self) -> None:
        param = AudioParam("gain", 0.0)
        param.set_value_at_time(0.0, 1.0)
        param.linear_ramp_to_value_at_time(1.0, 1.0)
        assert param.value_at(0.99) == 0.0
        assert param.value_at(1.0) == 1.0

    def test_cancel_scheduled_values(self) -> None:
        param = AudioParam("gain", 0.0)
        param.set_value_at_time(1.0, 0.0)
        param.linear_ramp_to_value_at_time(0.0, 2.0)
        param.cancel_scheduled_values(1.0)
        assert len(param.events) == 1
        assert param.value_at(5.0) == pytest.approx(1.0)

    def test_cancel_and_hold_freezes_current_value(self) -> None:
        param = AudioParam("gain", 0.0)
        param.set_value_at_time(0.0, 0.0)
        param.linear_ramp_to_value_at_time(1.0, 1.0)
        param.set_value_at_time(0.2, 2.0)
        param.cancel_and_hold_at_time(0.5)
        assert len(param.events) == 1
        assert param.default_value == pytest.approx(0.5)
        assert param.value_at(0.5) == pytest.approx(0.5)
        assert param.value_at(3.0) == pytest.approx(0.5)
        param.linear_ramp_to_value_at_time(0.0, 1.5)
        assert param.value_at(1.0) == pytest.approx(0.25)

    def test_vectorized_values_match_pointwise(self) -> None:
        param = AudioParam("gain", 0.0)
        param.set_value_at_time(0.0, 0.0)
        param.linear_ramp_to_value_at_time(1.0, 0.1)
        param.linear_ramp_to_value_at_time(0.5, 0.3)
        times = np.linspace(0.0, 0.5, 51)
        values = param.values(times)
        assert np.allclose(values, [param.value_at(float(t)) for t in times])


class TestNodes:
    def test_sine_oscillator_matches_reference(self) -> None:
        context = AudioContext(sample_rate=44_100, block_size=128)
        osc = context.create_oscillator("sine", 441.0)
        osc.connect(context.destination)
        osc.start(0.0)
        audio = context.render(300)
        expected = np.sin(2 * np.pi * 441.0 * np.arange(300) / 44_100)
        assert audio.dtype == np.float32
        assert np.allclose(audio, expected, atol=1e-4)

    def test_oscillator_silent_outside_start_stop(self) -> None:
        context = AudioContext(sample_rate=1_000, block_size=16)
        osc = context.create_oscillator("square", 50.0)
        osc.connect(context.destination)
        osc.start(0.1)
        osc.stop(0.2)
        audio = context.render(300)
        assert np.all(audio[:100] == 0.0)
        assert np.any(audio[100:200] != 0.0)
        assert np.all(audio[200:] == 0.0)

    def test_oscillator_start_twice_raises(self) -> None:
        context = AudioContext()
        osc = context.create_oscillator()
        osc.start(0.0)
        with pytest.raises(RuntimeError):
            osc.start(0.5)

    def test_unknown_waveform_rejected(self) -> None:
        context = AudioContext()
        with pytest.raises(ValueError):
            context.create_oscillator("noise", 440.0)  # type: ignore[arg-type]

    @pytest.mark.parametrize("waveform", ["sine", "triangle", "sawtooth", "square"])
    def test_waveforms_are_bounded(self, waveform) -> None:
        context = AudioContext(sample_rate=8_000, block_size=64)
        osc = context.create_oscillator(waveform, 330.0)
        osc.connect(context.destination)
        osc.start(0.0)
        audio = context.render(4_000)
        assert np.max(np.abs(audio)) <= 1.001
        assert np.max(np.abs(audio)) > 0.5

    def test_gain_scales_input(self) -> None:
        context = AudioContext(sample_rate=8_000, block_size=64)
        osc = context.create_oscillator("sine", 200.0)
        gain = context.create_gain(0.25)
        osc.connect(gain)
        gain.connect(context.destination)
        osc.start(0.0)
        audio = context.render(400)
        expected = 0.25 * np.sin(2 * np.pi * 200.0 * np.arange(400) / 8_000)
        assert np.allclose(audio, expected, atol=1e-4)

    def test_modulator_on_frequency_param_changes_output(self) -> None:
        def _render(depth: float) -> np.ndarray:
            context = AudioContext(sample_rate=8_000, block_size=64)
            carrier = context.create_oscillator("sine", 300.0)
            modulator = context.create_oscillator("sine", 600.0)
            depth_gain = context.create_gain(depth)
            modulator.connect(depth_gain)
            depth_gain.connect(carrier.frequency)
            carrier.connect(context.destination)
            carrier.start(0.0)
            modulator.start(0.0)
            return context.render(800)

        plain = _render(0.0)
        modulated = _render(900.0)
        reference = np.sin(2 * np.pi * 300.0 * np.arange(800) / 8_000)
        assert np.allclose(plain, reference, atol=1e-4)
        assert not np.allclose(modulated, plain, atol=1e-2)

    def test_disconnect_removes_contribution(self) -> None:
        context = AudioContext(sample_rate=8_000, block_size=64)
        osc = context.create_oscillator("sine", 200.0)
        osc.connect(context.destination)
        osc.start(0.0)
        assert np.any(context.render(64) != 0.0)
        osc.disconnect()
        assert osc.outputs == ()
        assert context.destination.inputs == ()
        assert np.all(context.render(64) == 0.0)

    def test_connect_is_idempotent(self) -> None:
        context = AudioContext()
        gain = context.create_gain()
        gain.connect(context.destination)
        gain.connect(context.destination)
        assert context.destination.inputs == (gain,)


class TestAudioContext:
    def test_render_advances_clock(self) -> None:
        context = AudioContext(sample_rate=1_000, block_size=128)
        assert context.current_time == 0.0
        assert context.render(0).size == 0
        audio = context.render(300)
        assert audio.size == 300
        assert context.current_time == pytest.approx(0.3)
        context.advance(0.2)
        assert context.current_time == pytest.approx(0.5)

    def test_due_tasks_run_while_rendering(self) -> None:
        context = AudioContext(sample_rate=1_000, block_size=10)
        fired: list[float] = []
        context.tasks.schedule(0.05, lambda: fired.append(context.current_time))
        context.advance(0.04)
        assert fired == []
        context.advance(0.02)
        assert fired == [pytest.approx(0.05)]

    def test_close_cancels_tasks_and_runs_hooks_once(self) -> None:
        context = AudioContext()
        closed: list[int] = []
        context.add_close_hook(lambda: closed.append(1))
        task = context.tasks.schedule(1.0, lambda: None)
        context.close()
        context.close()
        assert closed == [1]
        assert task.cancelled
        assert context.closed
        with pytest.raises(RuntimeError):
            context.create_gain()
        with pytest.raises(RuntimeError):
            context.render(10)

    def test_rejects_bad_dimensions(self) -> None:
        with pytest.raises(ValueError):
            AudioContext(sample_rate=0)
        with pytest.raises(ValueError):
            AudioContext(block_size=0)
