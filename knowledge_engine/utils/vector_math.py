"""Vector encoding and distance functions shared by the store and the semantic chunker.

Vectors are persisted as little-endian float32 BLOBs.  The three distance
functions below are registered as SQLite scalar functions by
:mod:`knowledge_engine.providers.store.sqlite_knowledge_store`, so every
function here must be deterministic and accept either raw BLOBs or
float sequences.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

_FLOAT32_LE = np.dtype("<f4")


def encode_vector(vector: Sequence[float]) -> bytes:
    """Encode *vector* as a little-endian float32 byte string."""
    return np.asarray(vector, dtype=_FLOAT32_LE).tobytes()


def decode_vector(blob: bytes) -> list[float]:
    """Decode a BLOB produced by :func:`encode_vector` back into floats."""
    return np.frombuffer(blob, dtype=_FLOAT32_LE).astype(np.float64).tolist()


def _as_array(value: bytes | Sequence[float]) -> np.ndarray:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return np.frombuffer(bytes(value), dtype=_FLOAT32_LE).astype(np.float64)
    return np.asarray(value, dtype=np.float64)


def _pair(a: bytes | Sequence[float], b: bytes | Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
    left = _as_array(a)
    right = _as_array(b)
    if left.shape != right.shape:
        msg = f"Vector dimension mismatch: {left.shape[0]} != {right.shape[0]}"
        raise ValueError(msg)
    return left, right


def cosine_distance(a: bytes | Sequence[float], b: bytes | Sequence[float]) -> float:
    """Return ``1 - cos(a, b)`` in ``[0, 2]``.

    A zero-norm vector has no direction; its distance to anything is 1.0.
    """
    left, right = _pair(a, b)
    norm = float(np.linalg.norm(left) * np.linalg.norm(right))
    if norm == 0.0:
        return 1.0
    similarity = float(np.dot(left, right)) / norm
    return 1.0 - max(-1.0, min(1.0, similarity))


def l2_distance(a: bytes | Sequence[float], b: bytes | Sequence[float]) -> float:
    """Return the Euclidean distance between *a* and *b*."""
    left, right = _pair(a, b)
    return float(np.linalg.norm(left - right))


def inner_product_distance(a: bytes | Sequence[float], b: bytes | Sequence[float]) -> float:
    """Return ``max(0, 1 - a·b)``.

    Clamped at zero so the ``1 / (1 + d)`` score transform stays in ``(0, 1]``.
    """
    left, right = _pair(a, b)
    return max(0.0, 1.0 - float(np.dot(left, right)))
