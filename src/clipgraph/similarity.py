"""Cosine similarity between embedding vectors.

Pure functions. Every threshold comparison in the package goes through
exceeds_threshold() so the strict/inclusive convention lives in one place.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from .constants import SIMILARITY_THRESHOLD_MAX, SIMILARITY_THRESHOLD_MIN
from .errors import DimensionMismatch, ValidationError


def _unit(v: np.ndarray) -> np.ndarray | None:
    """Scale v to unit length, or None for an empty or all-zero vector.

    Dividing by the largest component first keeps the norm finite for
    components near the float64 limit.
    """
    if not np.all(np.isfinite(v)):
        raise ValidationError("Vectors must contain only finite numbers")
    if v.size == 0:
        return None
    peak = np.max(np.abs(v))
    if peak == 0:
        return None
    v = v / peak
    return v / np.linalg.norm(v)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatch: If the vectors differ in length.
        ValidationError: If either vector holds a NaN or infinity.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))

    v1 = _unit(np.asarray(a, dtype=np.float64))
    v2 = _unit(np.asarray(b, dtype=np.float64))
    if v1 is None or v2 is None:
        return 0.0

    sim = float(np.dot(v1, v2))
    # Rounding can push identical vectors a hair past 1.0
    return max(-1.0, min(1.0, sim))


def validate_threshold(value: object) -> float:
    """Return value as a float if it lies strictly inside (0, 1).

    Raises:
        ValidationError: If the value is not a real number in range.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Threshold must be a number, got {value!r}")
    threshold = float(value)
    if math.isnan(threshold) or not (
        SIMILARITY_THRESHOLD_MIN < threshold < SIMILARITY_THRESHOLD_MAX
    ):
        raise ValidationError(
            f"Threshold must be between {SIMILARITY_THRESHOLD_MIN} and "
            f"{SIMILARITY_THRESHOLD_MAX} (exclusive), got {value!r}"
        )
    return threshold


def exceeds_threshold(similarity: float, threshold: float) -> bool:
    """Strict comparison: a pair at exactly the threshold is unconnected."""
    return similarity > threshold
