from .halfspace import (
    Halfspace,
    Polygon,
    intersect_halfspaces,
    is_step_feasible,
    max_constraint_violation,
    world_bounds_from_halfspaces,
)
from .vector import Vector2, add, dot, lerp, norm, normalize, scale, squared_norm, sub

__all__ = [
    "Halfspace",
    "Polygon",
    "Vector2",
    "add",
    "dot",
    "intersect_halfspaces",
    "is_step_feasible",
    "lerp",
    "max_constraint_violation",
    "norm",
    "normalize",
    "scale",
    "squared_norm",
    "sub",
    "world_bounds_from_halfspaces",
]
