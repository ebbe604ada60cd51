"""Audio Codec Adapter.

Converts base64-framed call audio (mu-law, 8 kHz) to base64-framed model audio
(PCM16 little-endian) and back. Everything here is pure and stateless, so the
adapters can be shared by any number of links.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Final, Literal

import numpy as np

from relay.errors import CodecError
from telephony.g711 import ulaw_decode, ulaw_encode

CALL_SAMPLE_RATE: Final[int] = 8000
PCM16_SAMPLE_WIDTH: Final[int] = 2

Encoding = Literal["call-native", "model-native"]


@dataclass(frozen=True, slots=True)
class AudioFrame:
    payload: str
    encoding: Encoding
    sequence: int
    origin: str

    def decoded(self) -> bytes:
        try:
            return base64.b64decode(self.payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CodecError(self.origin, self.sequence, "payload is not valid base64") from exc


def pcm16_upsample(pcm: np.ndarray, factor: int) -> np.ndarray:
    """Linear interpolation on a grid aligned with the source samples.

    Every ``factor``-th output sample is an original sample, which makes
    :func:`pcm16_downsample` an exact inverse.
    """

    if factor == 1 or pcm.size == 0:
        return pcm.astype(np.int16)

    x_old = np.arange(pcm.size, dtype=np.float64)
    x_new = np.arange(pcm.size * factor, dtype=np.float64) / factor
    y_new = np.interp(x_new, x_old, pcm.astype(np.float64))

    return np.clip(np.rint(y_new), -32768, 32767).astype(np.int16)


def pcm16_downsample(pcm: np.ndarray, factor: int) -> np.ndarray:
    if factor == 1:
        return pcm.astype(np.int16)
    return pcm[::factor].astype(np.int16)


def _pcm16_from_bytes(raw: bytes, frame: AudioFrame) -> np.ndarray:
    if len(raw) % PCM16_SAMPLE_WIDTH:
        raise CodecError(
            frame.origin,
            frame.sequence,
            f"PCM16 frame length {len(raw)} is not a multiple of {PCM16_SAMPLE_WIDTH}",
        )
    return np.frombuffer(raw, dtype="<i2")


def _expect(frame: AudioFrame, encoding: Encoding) -> None:
    if frame.encoding != encoding:
        raise CodecError(frame.origin, frame.sequence, f"expected {encoding} audio, got {frame.encoding}")


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TelephonyCodec:
    """mu-law 8 kHz <-> PCM16 at ``model_sample_rate``."""

    def __init__(self, model_sample_rate: int = 24000) -> None:
        if model_sample_rate % CALL_SAMPLE_RATE:
            raise ValueError("model_sample_rate must be a multiple of 8000")
        self._factor = model_sample_rate // CALL_SAMPLE_RATE

    def to_model_format(self, frame: AudioFrame) -> AudioFrame:
        _expect(frame, "call-native")
        pcm8k = ulaw_decode(frame.decoded())
        pcm = pcm16_upsample(pcm8k, self._factor)
        return AudioFrame(
            payload=_encode(pcm.astype("<i2").tobytes()),
            encoding="model-native",
            sequence=frame.sequence,
            origin=frame.origin,
        )

    def to_call_format(self, frame: AudioFrame) -> AudioFrame:
        _expect(frame, "model-native")
        pcm = _pcm16_from_bytes(frame.decoded(), frame)
        pcm8k = pcm16_downsample(pcm, self._factor)
        return AudioFrame(
            payload=_encode(ulaw_encode(pcm8k)),
            encoding="call-native",
            sequence=frame.sequence,
            origin=frame.origin,
        )


class PassthroughCodec:
    """For transports that already speak the model's PCM16 format."""

    def to_model_format(self, frame: AudioFrame) -> AudioFrame:
        _pcm16_from_bytes(frame.decoded(), frame)
        return AudioFrame(frame.payload, "model-native", frame.sequence, frame.origin)

    def to_call_format(self, frame: AudioFrame) -> AudioFrame:
        _expect(frame, "model-native")
        _pcm16_from_bytes(frame.decoded(), frame)
        return AudioFrame(frame.payload, "call-native", frame.sequence, frame.origin)
