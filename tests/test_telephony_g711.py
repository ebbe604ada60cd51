from __future__ import annotations

import numpy as np

from telephony.g711 import ulaw_decode, ulaw_encode


def test_ulaw_encode_decode_shape_and_types() -> None:
    # 20ms of 8kHz samples
    pcm = (np.sin(np.linspace(0, 2 * np.pi, 160, endpoint=False)) * 12000).astype(np.int16)

    ulaw = ulaw_encode(pcm)
    assert isinstance(ulaw, bytes | bytearray)
    assert len(ulaw) == pcm.size

    decoded = ulaw_decode(ulaw)
    assert decoded.dtype == np.int16
    assert decoded.shape == pcm.shape


def test_ulaw_silence_decodes_to_zero() -> None:
    # Common mu-law 'silence' byte is 0xFF.
    assert not ulaw_decode(b"\xFF" * 160).any()
    assert ulaw_encode(np.zeros(320, dtype=np.int16)) == b"\xFF" * 320


def test_ulaw_decode_matches_reference_levels() -> None:
    decoded = ulaw_decode(bytes([0x00, 0x80, 0x7F, 0xFF]))
    assert decoded.tolist() == [-32124, 32124, 0, 0]


def test_every_code_survives_a_decode_encode_cycle() -> None:
    codes = bytes(range(256))
    levels = ulaw_decode(codes)

    assert np.array_equal(ulaw_decode(ulaw_encode(levels)), levels)


def test_encoding_error_stays_within_one_quantization_step() -> None:
    pcm = np.arange(-32000, 32000, 37, dtype=np.int16)
    decoded = ulaw_decode(ulaw_encode(pcm)).astype(np.int32)

    # Step size doubles with each of the 8 segments, from 8 up to 1024.
    error = np.abs(decoded - pcm.astype(np.int32))
    assert int(error.max()) <= 1024
    small = np.abs(pcm.astype(np.int32)) < 100
    assert int(error[small].max()) <= 8
