from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Iterable

from rich.console import Console
from rich.table import Table

from .config import load_log_settings, load_settings
from .engine import VoiceEngine
from .logging_utils import configure_logging, log_exception
from .models import DEFAULT_MODEL, MODEL_KEYS, MODELS, map_color
from .params import SynthParams
from .playback import backend_name, realtime_context_factory, wait_until_idle
from .spinner import Spinner, render_error

_LOGGER = logging.getLogger("synesthesia.cli")
_CONSOLE = Console()


def _add_color_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", choices=MODEL_KEYS, default=DEFAULT_MODEL)
    parser.add_argument("--hue", type=float, required=True, help="Hue in degrees, [0, 360).")
    parser.add_argument(
        "--lightness",
        type=float,
        default=50.0,
        help="50 is the vivid edge of the wheel, 100 the white center.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="synesthesia")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("models", help="List the available color models.")

    describe = sub.add_parser("describe", help="Show the FM voice a color maps to.")
    _add_color_args(describe)
    describe.add_argument("--json", action="store_true", help="Print raw JSON.")

    play = sub.add_parser("play", help="Play a color through the sound card.")
    _add_color_args(play)
    play.add_argument("--repeat", type=int, default=1)
    play.add_argument("--interval", type=float, default=0.25, help="Seconds between repeats.")

    sub.add_parser("doctor", help="Check audio backend availability and paths.")
    return parser


def _params_table(params: SynthParams) -> Table:
    table = Table(title=f"{params.carrier_freq:.2f} Hz {params.carrier_waveform}")
    table.add_column("layer")
    table.add_column("ratio", justify="right")
    table.add_column("index", justify="right")
    table.add_column("decay", justify="right")
    for position, operator in enumerate(params.operators, start=1):
        decay = "-" if operator.index_decay is None else f"{operator.index_decay:.3f}"
        table.add_row(f"op{position} ({operator.waveform})", f"{operator.ratio:.3f}", f"{operator.index:.3f}", decay)
    if params.sub is not None:
        sub = params.sub
        table.add_row(
            f"sub ({sub.resolved_waveform()})",
            f"{sub.resolved_freq(params.carrier_freq):.2f} Hz",
            f"gain {sub.resolved_gain():.3f}",
            "-",
        )
    env = params.envelope
    table.caption = (
        f"A {env.attack:.3f}s  D {env.decay:.3f}s  S {env.sustain:.2f}  "
        f"R {env.release:.3f}s  duration {params.duration:.2f}s"
    )
    return table


def _print_lines(lines: Iterable[str]) -> None:
    for line in lines:
        _CONSOLE.print(line)


def _play(model: str, hue: float, lightness: float, *, repeat: int, interval: float) -> None:
    params = map_color(model, hue, lightness)
    engine = VoiceEngine(load_settings(), context_factory=realtime_context_factory)
    engine.init()
    try:
        for index in range(max(repeat, 1)):
            if index:
                time.sleep(interval)
            engine.play(params)
        with Spinner(f"♪ {MODELS[model].name} hue={hue:g} lightness={lightness:g}"):  # type: ignore[index]
            wait_until_idle(engine)
    finally:
        engine.shutdown()


def main(argv: list[str] | None = None) -> int:
    log_settings = configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        if args.command == "models":
            _print_lines(f"{key}: {model.name} - {model.description}" for key, model in MODELS.items())
            return 0

        if args.command == "describe":
            params = map_color(args.model, args.hue, args.lightness)
            if args.json:
                _CONSOLE.print_json(params.model_dump_json())
            else:
                _CONSOLE.print(_params_table(params))
            return 0

        if args.command == "play":
            _play(args.model, args.hue, args.lightness, repeat=args.repeat, interval=args.interval)
            return 0

        if args.command == "doctor":
            settings = load_settings()
            backend = backend_name()
            _print_lines(
                [
                    f"Sample rate: {settings.sample_rate} Hz (block {settings.block_size})",
                    f"Master level: {settings.master_level}",
                    f"Log file: {load_log_settings().log_path}",
                    f"Real-time backend: {backend or 'unavailable'}",
                    "Hints:",
                    "- Install `synesthesia[realtime]` to enable `synesthesia play`.",
                    "- Set SYNESTHESIA_SAMPLE_RATE / SYNESTHESIA_BLOCK_SIZE to match your device.",
                ]
            )
            return 0

        parser.print_help()
        return 1
    except Exception as exc:
        _LOGGER.warning("synesthesia CLI failed: %s", exc, exc_info=log_settings.debug)
        log_exception("synesthesia CLI", exc)
        render_error("synesthesia CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
