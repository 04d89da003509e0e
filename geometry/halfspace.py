"""Halfspace predicates and convex clipping of the feasible region."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from .vector import Vector2, dot, lerp

CLIP_TOL = 1e-8
NO_ACTIVE_VIOLATION = float("-inf")


@dataclass(frozen=True)
class Halfspace:
    """Linear constraint ``normal . step <= bound``.

    Inactive halfspaces stay in the caller's list but are skipped by every
    geometric and optimization routine.
    """

    id: str
    label: str
    normal: Vector2
    bound: float
    active: bool = True

    def value(self, point: Vector2) -> float:
        """Signed slack ``normal . point - bound`` (positive means violated)."""
        return dot(self.normal, point) - self.bound


@dataclass(frozen=True)
class Polygon:
    vertices: Tuple[Vector2, ...] = field(default_factory=tuple)
    is_empty: bool = True


def active_only(halfspaces: Iterable[Halfspace]) -> List[Halfspace]:
    return [halfspace for halfspace in halfspaces if halfspace.active]


def is_step_feasible(
    step: Vector2,
    halfspaces: Iterable[Halfspace],
    tol: float = CLIP_TOL,
) -> bool:
    return all(
        dot(halfspace.normal, step) <= halfspace.bound + tol
        for halfspace in halfspaces
        if halfspace.active
    )


def max_constraint_violation(step: Vector2, halfspaces: Iterable[Halfspace]) -> float:
    """Largest ``normal . step - bound`` over active halfspaces.

    Returns ``-inf`` when nothing is active; callers must handle that case.
    """
    worst = NO_ACTIVE_VIOLATION
    for halfspace in halfspaces:
        if not halfspace.active:
            continue
        worst = max(worst, halfspace.value(step))
    return worst


def world_bounds_from_halfspaces(halfspaces: Iterable[Halfspace]) -> float:
    bounds = [abs(halfspace.bound) for halfspace in halfspaces if halfspace.active]
    max_bound = max(bounds) if bounds else 1.0
    return max(1.2, max_bound * 1.9)


def _clip_polygon(vertices: Sequence[Vector2], halfspace: Halfspace) -> List[Vector2]:
    if not vertices:
        return []

    output: List[Vector2] = []
    count = len(vertices)
    for idx in range(count):
        current = vertices[idx]
        following = vertices[(idx + 1) % count]
        current_value = halfspace.value(current)
        following_value = halfspace.value(following)
        current_inside = current_value <= CLIP_TOL
        following_inside = following_value <= CLIP_TOL

        if current_inside:
            output.append(current)
        if current_inside != following_inside:
            t = current_value / (current_value - following_value)
            output.append(lerp(current, following, t))
    return output


def intersect_halfspaces(halfspaces: Iterable[Halfspace], world_radius: float) -> Polygon:
    """Clip the square ``[-world_radius, world_radius]^2`` by each active halfspace."""
    r = float(world_radius)
    polygon: List[Vector2] = [
        Vector2(-r, -r),
        Vector2(r, -r),
        Vector2(r, r),
        Vector2(-r, r),
    ]

    for halfspace in halfspaces:
        if not halfspace.active:
            continue
        polygon = _clip_polygon(polygon, halfspace)
        if not polygon:
            return Polygon(vertices=(), is_empty=True)

    return Polygon(vertices=tuple(polygon), is_empty=len(polygon) < 3)
