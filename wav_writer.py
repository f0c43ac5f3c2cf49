"""16-bit PCM quantization and canonical RIFF/WAVE serialization."""

from dataclasses import dataclass
import logging
import struct
import wave

import numpy as np

logger = logging.getLogger(__name__)

PCM_SCALE = 32767.0
HEADER_SIZE = 44

_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


def convert_to_16bit(samples: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1], scale by 32767 and truncate toward zero."""

    x = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    return (x * PCM_SCALE).astype(np.int16)


@dataclass(frozen=True)
class WaveHeader:
    sample_rate: int
    data_size: int
    num_channels: int = 1
    bits_per_sample: int = 16

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.num_channels * self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        return self.num_channels * self.bits_per_sample // 8

    @property
    def chunk_size(self) -> int:
        return 36 + self.data_size

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(
            b"RIFF",
            self.chunk_size,
            b"WAVE",
            b"fmt ",
            16,
            1,  # PCM
            self.num_channels,
            self.sample_rate,
            self.byte_rate,
            self.block_align,
            self.bits_per_sample,
            b"data",
            self.data_size,
        )


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Return a complete mono 16-bit WAV file for float ``samples``."""

    pcm = convert_to_16bit(samples).astype("<i2", copy=False)
    payload = pcm.tobytes()
    header = WaveHeader(sample_rate=int(sample_rate), data_size=len(payload))
    return header.pack() + payload


def write_wave_file(path: str, samples: np.ndarray, sample_rate: int) -> int:
    """Write ``samples`` to ``path`` and return the number of samples written."""

    pcm = convert_to_16bit(samples).astype("<i2", copy=False)
    with wave.open(path, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(int(sample_rate))
        w.writeframes(pcm.tobytes())
    logger.info("WAV written: %s (%d samples @ %d Hz)", path, pcm.size, sample_rate)
    return int(pcm.size)
