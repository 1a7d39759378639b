from __future__ import annotations

import logging
import time
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

from .audio import hard_clip
from .config import EngineSettings
from .engine import VoiceEngine
from .errors import AudioUnavailableError
from .graph import AudioContext

_LOGGER = logging.getLogger("synesthesia.playback")

# Opens a live output stream fed by the context; returns a callable that closes it.
StreamOpener = Callable[[AudioContext], Callable[[], None]]


class PlaybackBackend(BaseModel):
    name: str
    open_stream: StreamOpener

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


def _load_backend() -> PlaybackBackend | None:
    return _load_sounddevice()


def _resolve_backend() -> PlaybackBackend:
    backend = _load_backend()
    if backend is None:
        raise AudioUnavailableError(
            "Real-time playback requires sounddevice. "
            "Install it with `pip install synesthesia[realtime]`."
        )
    return backend


def backend_name() -> str | None:
    backend = _load_backend()
    return backend.name if backend is not None else None


def realtime_context_factory(settings: EngineSettings) -> AudioContext:
    """Context driven by the sound card's clock instead of explicit renders."""

    backend = _resolve_backend()
    context = AudioContext(sample_rate=settings.sample_rate, block_size=settings.block_size)
    try:
        close_stream = backend.open_stream(context)
    except Exception as exc:
        _LOGGER.warning("Failed to open %s output stream: %s", backend.name, exc, exc_info=True)
        raise AudioUnavailableError(f"Could not open {backend.name} output stream: {exc}") from exc
    context.add_close_hook(close_stream)
    _LOGGER.info("Opened %s output stream at %d Hz", backend.name, settings.sample_rate)
    return context


def wait_until_idle(
    engine: VoiceEngine,
    *,
    poll_interval: float = 0.05,
    timeout: float | None = None,
) -> bool:
    """Block the calling thread until every voice has been disposed.

    Only for front ends such as the CLI; the engine itself never waits.
    """

    deadline = None if timeout is None else time.monotonic() + timeout
    while engine.voices:
        if deadline is not None and time.monotonic() >= deadline:
            return False
        time.sleep(poll_interval)
    return True


def _load_sounddevice() -> PlaybackBackend | None:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except ImportError as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        return None
    except OSError as exc:
        # Raised when the PortAudio shared library itself is missing.
        _LOGGER.info("PortAudio not available: %s", exc, exc_info=True)
        return None
    sd: Any = sd_module

    def _open_stream(context: AudioContext) -> Callable[[], None]:
        def _callback(outdata: Any, frames: int, time_info: Any, status: Any) -> None:
            _ = time_info
            if status:
                _LOGGER.debug("Output stream status: %s", status)
            outdata[:, 0] = hard_clip(context.render(frames))

        stream = sd.OutputStream(
            samplerate=context.sample_rate,
            blocksize=context.block_size,
            channels=1,
            dtype="float32",
            callback=_callback,
        )
        stream.start()

        def _close() -> None:
            stream.stop()
            stream.close()

        return _close

    return PlaybackBackend(name="sounddevice", open_stream=_open_stream)
