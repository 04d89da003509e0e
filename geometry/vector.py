"""Two-dimensional vector primitives."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable

import numpy as np

NORMALIZE_EPS = 1e-8


@dataclass(frozen=True)
class Vector2:
    x: float
    y: float

    @classmethod
    def from_iterable(cls, values: Iterable[float]) -> Vector2:
        arr = np.asarray(list(values), dtype=float).reshape(-1)
        if arr.size != 2:
            raise ValueError(f"vector must have 2 components, got {arr.size}")
        return cls(float(arr[0]), float(arr[1]))

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    def to_list(self) -> list[float]:
        return [self.x, self.y]


ZERO = Vector2(0.0, 0.0)


def add(a: Vector2, b: Vector2) -> Vector2:
    return Vector2(a.x + b.x, a.y + b.y)


def sub(a: Vector2, b: Vector2) -> Vector2:
    return Vector2(a.x - b.x, a.y - b.y)


def scale(a: Vector2, s: float) -> Vector2:
    return Vector2(a.x * s, a.y * s)


def dot(a: Vector2, b: Vector2) -> float:
    return a.x * b.x + a.y * b.y


def squared_norm(a: Vector2) -> float:
    return dot(a, a)


def norm(a: Vector2) -> float:
    return math.sqrt(squared_norm(a))


def normalize(a: Vector2) -> Vector2:
    """Return ``a`` scaled to unit length, or the zero vector when ``a`` is ~0."""
    length = norm(a)
    if length <= NORMALIZE_EPS:
        return ZERO
    return Vector2(a.x / length, a.y / length)


def lerp(a: Vector2, b: Vector2, t: float) -> Vector2:
    return Vector2(a.x + (b.x - a.x) * t, a.y + (b.y - a.y) * t)
