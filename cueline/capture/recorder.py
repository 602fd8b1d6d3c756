"""Microphone capture that rolls over into fixed-length speech clips.

WHY: The resolver works on short, self-contained clips. Recording
continuously and cutting a clip every two seconds gives the model enough
speech to match against the script while keeping tracking responsive.

HOW: A sounddevice.InputStream delivers float32 blocks on the PortAudio
thread. The callback copies each block and hands it to the event loop with
call_soon_threadsafe, so all buffering happens on the loop thread. A
call_later timer rolls the buffer over: the accumulated blocks are encoded
as one 16-bit mono WAV clip and passed to on_clip.

RULES:
- device None or "default" opens the system default input device
- A device that cannot be opened raises PermissionDenied
- Empty accumulators produce no clip
- stop_capture() cancels the rollover timer, closes the stream, and
  discards any partial clip
- Clip sequence numbers increase by one per clip and never reset while
  the adapter lives
"""

from __future__ import annotations

import asyncio
import io
import logging
import wave
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, List, Optional, Union

import numpy as np
import sounddevice

from cueline.api.models import AudioClip
from cueline.config import CLIP_SECONDS, SAMPLE_RATE
from cueline.errors import PermissionDenied

logger = logging.getLogger(__name__)

_BLOCK_SIZE = 1024


@dataclass
class InputDevice:
    index: int
    name: str
    input_channels: int
    sample_rate: float
    is_default: bool


def list_input_devices() -> List[InputDevice]:
    """Enumerate devices with at least one input channel."""
    devices = sounddevice.query_devices()
    default_input = int(sounddevice.default.device[0])

    result: List[InputDevice] = []
    for i in range(len(devices)):
        dev = devices[i]
        if dev["max_input_channels"] > 0:
            result.append(
                InputDevice(
                    index=i,
                    name=str(dev["name"]),
                    input_channels=int(dev["max_input_channels"]),
                    sample_rate=float(dev["default_samplerate"]),
                    is_default=(i == default_input),
                )
            )
    return result


def encode_wav(blocks: List[np.ndarray], sample_rate: int) -> bytes:
    """Encode float32 blocks in [-1, 1] as a 16-bit mono WAV file."""
    samples = np.concatenate(blocks).reshape(-1)
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm.tobytes())
    return buffer.getvalue()


class SpeechCaptureAdapter:
    """Records from one input device and emits AudioClip objects."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_clip: Callable[[AudioClip], None],
        clip_seconds: float = CLIP_SECONDS,
        sample_rate: int = SAMPLE_RATE,
    ) -> None:
        self._loop = loop
        self._on_clip = on_clip
        self._clip_seconds = clip_seconds
        self._sample_rate = sample_rate

        self._stream: Optional[Any] = None
        self._rollover: Optional[asyncio.TimerHandle] = None
        self._blocks: List[np.ndarray] = []
        self._sequence = 0

    @property
    def is_capturing(self) -> bool:
        return self._stream is not None

    def start_capture(self, device: Union[int, str, None] = None) -> None:
        """Open the input device and start rolling clips.

        Raises:
            PermissionDenied: The device is refused or unavailable.
        """
        if self._stream is not None:
            return
        if device == "default":
            device = None

        try:
            stream = sounddevice.InputStream(
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=_BLOCK_SIZE,
                callback=self._audio_callback,
                device=device,
            )
            stream.start()
        except (sounddevice.PortAudioError, ValueError) as exc:
            logger.warning("Could not open input device %r: %s", device, exc)
            raise PermissionDenied(
                "Could not access the microphone. Please check your device "
                "permissions and selection."
            ) from exc

        self._stream = stream
        self._blocks = []
        self._schedule_rollover()
        logger.info(
            "Speech capture started: device=%r, sample_rate=%d, clip=%.1fs",
            device, self._sample_rate, self._clip_seconds,
        )

    def stop_capture(self) -> None:
        """Stop recording and discard any partial clip."""
        if self._rollover is not None:
            self._rollover.cancel()
            self._rollover = None
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except sounddevice.PortAudioError:
                logger.exception("Failed to close input stream")
            self._stream = None
            logger.info("Speech capture stopped")
        self._blocks = []

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _audio_callback(self, indata, frames, time_info, status) -> None:  # noqa: ANN001
        """PortAudio thread: hand a copy of the block to the event loop."""
        if status:
            logger.debug("Input stream status: %s", status)
        self._loop.call_soon_threadsafe(self._append_block, indata.copy())

    def _append_block(self, block: np.ndarray) -> None:
        if self._stream is None:
            return
        self._blocks.append(block)

    def _schedule_rollover(self) -> None:
        self._rollover = self._loop.call_later(self._clip_seconds, self._roll_over)

    def _roll_over(self) -> None:
        self._rollover = None
        if self._stream is None:
            return
        blocks, self._blocks = self._blocks, []
        self._schedule_rollover()
        if not blocks:
            return

        self._sequence += 1
        frames = sum(len(block) for block in blocks)
        clip = AudioClip(
            data=encode_wav(blocks, self._sample_rate),
            mime_type="audio/wav",
            duration_s=frames / float(self._sample_rate),
            sequence=self._sequence,
        )
        self._on_clip(clip)
