"""Float32 vector encoding and cosine similarity."""

from typing import Sequence

import numpy as np

from ..errors import VectorCorruptionError

_LE_FLOAT32 = np.dtype("<f4")


def encode_vector(vector: Sequence[float]) -> bytes:
    """Fixed-width little-endian float32 bytes."""
    return np.asarray(vector, dtype=_LE_FLOAT32).tobytes()


def decode_vector(data: bytes) -> np.ndarray:
    if len(data) % 4 != 0:
        raise VectorCorruptionError(len(data))
    return np.frombuffer(data, dtype=_LE_FLOAT32)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|).

    Empty, zero-norm or mismatched-dimension inputs score 0 (no match).
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or vb.size == 0 or va.shape != vb.shape:
        return 0.0
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    score = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding noise can push |v . v| / |v|^2 a hair past 1
    return max(-1.0, min(1.0, score))


def as_float32(vector: Sequence[float]) -> list[float]:
    """Round a vector to the precision it is stored with."""
    return np.asarray(vector, dtype=_LE_FLOAT32).tolist()
