"""Projection of a proposed step onto the guardrail halfspaces."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from geometry.halfspace import (
    Halfspace,
    active_only,
    intersect_halfspaces,
    max_constraint_violation,
    world_bounds_from_halfspaces,
)
from geometry.vector import ZERO, Vector2, add, dot, norm, scale, sub
from solver.active_set import ActiveSetSolver, CandidateSearch, objective

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-7
BINDING_FACTOR = 8.0

REASON_BAD_ETA = "step size must be positive"
REASON_EMPTY_REGION = "guardrail set is infeasible: the feasible region is empty"
REASON_UNSTABLE = "numerical instability in QP solve; try a smaller eta or looser bounds"
REASON_NO_CANDIDATE = "no feasible projected step for current guardrails"


@dataclass(frozen=True)
class ProjectionInput:
    gradient: Vector2
    eta: float
    halfspaces: Tuple[Halfspace, ...]
    tolerance: float = DEFAULT_TOLERANCE


@dataclass(frozen=True)
class ConstraintDiagnostic:
    id: str
    label: str
    normal: Vector2
    bound: float
    active: bool
    violation_step0: float
    violation_projected: float
    lam: float
    is_binding: bool


@dataclass(frozen=True)
class ProjectionResult:
    step0: Vector2
    projected_step: Vector2
    lambda_by_id: Mapping[str, float]
    correction_by_id: Mapping[str, Vector2]
    diagnostics: Tuple[ConstraintDiagnostic, ...]
    active_set_ids: Tuple[str, ...]
    objective0: float
    objective_projected: float
    stationarity_residual: float
    max_violation_step0: float
    max_violation_projected: float
    descent_linear0: float
    descent_linear_projected: float
    descent_retained_ratio: float
    ship: bool
    reason: Optional[str]
    search: Optional[CandidateSearch] = field(default=None, compare=False, repr=False)


def gradient_from_step(raw_step: Vector2, eta: float) -> Vector2:
    """Gradient whose unconstrained step ``-eta * g`` equals ``raw_step``."""
    return scale(raw_step, -1.0 / eta)


def clamp_step(step: Vector2, halfspaces: Sequence[Halfspace], *, factor: float = 1.25) -> Vector2:
    radius = world_bounds_from_halfspaces(halfspaces) * factor
    magnitude = norm(step)
    if magnitude <= radius or magnitude < DEFAULT_TOLERANCE:
        return step
    return scale(step, radius / magnitude)


def _violation(step: Vector2, halfspaces: Sequence[Halfspace]) -> float:
    worst = max_constraint_violation(step, halfspaces)
    return 0.0 if math.isinf(worst) else worst


def _stationarity_residual(
    step: Vector2,
    gradient: Vector2,
    eta: float,
    halfspaces: Sequence[Halfspace],
    lambda_by_id: Mapping[str, float],
) -> float:
    if eta == 0:
        return math.nan
    residual = add(scale(step, 1.0 / eta), gradient)
    for halfspace in halfspaces:
        if halfspace.active:
            residual = add(residual, scale(halfspace.normal, lambda_by_id.get(halfspace.id, 0.0)))
    return norm(residual)


def _build_result(
    *,
    step0: Vector2,
    projected_step: Vector2,
    gradient: Vector2,
    eta: float,
    halfspaces: Sequence[Halfspace],
    lambda_by_id: Dict[str, float],
    active_set_ids: Sequence[str],
    objective0: float,
    objective_projected: float,
    ship: bool,
    reason: Optional[str],
    tolerance: float,
    search: Optional[CandidateSearch] = None,
) -> ProjectionResult:
    correction_by_id: Dict[str, Vector2] = {}
    diagnostics: List[ConstraintDiagnostic] = []
    for halfspace in halfspaces:
        lam = lambda_by_id.get(halfspace.id, 0.0) if halfspace.active else 0.0
        correction_by_id[halfspace.id] = scale(halfspace.normal, -eta * lam) if lam else ZERO
        violation_step0 = halfspace.value(step0) if halfspace.active else 0.0
        violation_projected = halfspace.value(projected_step) if halfspace.active else 0.0
        diagnostics.append(
            ConstraintDiagnostic(
                id=halfspace.id,
                label=halfspace.label,
                normal=halfspace.normal,
                bound=halfspace.bound,
                active=halfspace.active,
                violation_step0=violation_step0,
                violation_projected=violation_projected,
                lam=lam,
                is_binding=(
                    halfspace.active
                    and abs(violation_projected) <= BINDING_FACTOR * tolerance
                    and lam > tolerance
                ),
            )
        )

    descent_linear0 = -dot(gradient, step0)
    descent_linear_projected = -dot(gradient, projected_step)
    if descent_linear0 > tolerance:
        retained = descent_linear_projected / descent_linear0
    else:
        retained = 1.0

    return ProjectionResult(
        step0=step0,
        projected_step=projected_step,
        lambda_by_id=MappingProxyType(dict(lambda_by_id)),
        correction_by_id=MappingProxyType(correction_by_id),
        diagnostics=tuple(diagnostics),
        active_set_ids=tuple(active_set_ids),
        objective0=objective0,
        objective_projected=objective_projected,
        stationarity_residual=_stationarity_residual(
            projected_step, gradient, eta, halfspaces, lambda_by_id
        ),
        max_violation_step0=_violation(step0, halfspaces),
        max_violation_projected=_violation(projected_step, halfspaces),
        descent_linear0=descent_linear0,
        descent_linear_projected=descent_linear_projected,
        descent_retained_ratio=retained,
        ship=ship,
        reason=reason,
        search=search,
    )


def compute_projected_step(problem: ProjectionInput) -> ProjectionResult:
    """Project ``-eta * gradient`` onto the active halfspaces.

    Infeasibility and numerical degeneracy are reported through ``ship=False``
    and ``reason``; the unconstrained step is returned as ``projected_step`` in
    that case.
    """
    gradient = problem.gradient
    eta = float(problem.eta)
    tolerance = float(problem.tolerance)
    halfspaces = list(problem.halfspaces)
    step0 = scale(gradient, -eta)
    zero_lambdas = {halfspace.id: 0.0 for halfspace in halfspaces}

    def unprojected(reason: Optional[str], *, ship: bool = False, search=None) -> ProjectionResult:
        objective0 = objective(gradient, eta, step0) if eta != 0 else math.nan
        if not ship:
            logger.debug("hold: %s", reason)
        return _build_result(
            step0=step0,
            projected_step=step0,
            gradient=gradient,
            eta=eta,
            halfspaces=halfspaces,
            lambda_by_id=dict(zero_lambdas),
            active_set_ids=(),
            objective0=objective0,
            objective_projected=objective0,
            ship=ship,
            reason=reason,
            tolerance=tolerance,
            search=search,
        )

    if not math.isfinite(eta) or eta <= tolerance:
        return unprojected(REASON_BAD_ETA)

    active = active_only(halfspaces)
    if not active:
        return unprojected(None, ship=True)

    region = intersect_halfspaces(active, world_bounds_from_halfspaces(active))
    if region.is_empty:
        return unprojected(REASON_EMPTY_REGION)

    search = ActiveSetSolver(tol=tolerance).search(gradient, eta, active)
    best = search.best
    if best is None:
        reason = REASON_UNSTABLE if search.linear_solve_failures > 0 else REASON_NO_CANDIDATE
        return unprojected(reason, search=search)

    lambda_by_id = dict(zero_lambdas)
    active_set_ids: List[str] = []
    for halfspace, lam in zip(active, best.lambdas):
        lambda_by_id[halfspace.id] = lam
        if lam > tolerance:
            active_set_ids.append(halfspace.id)

    return _build_result(
        step0=step0,
        projected_step=best.step,
        gradient=gradient,
        eta=eta,
        halfspaces=halfspaces,
        lambda_by_id=lambda_by_id,
        active_set_ids=active_set_ids,
        objective0=objective(gradient, eta, step0),
        objective_projected=best.objective,
        ship=True,
        reason=None,
        tolerance=tolerance,
        search=search,
    )


def correction_consistency_error(result: ProjectionResult) -> float:
    """Norm of ``step0 + sum(corrections) - projected_step``; for tests and debugging."""
    total = result.step0
    for correction in result.correction_by_id.values():
        total = add(total, correction)
    return norm(sub(total, result.projected_step))
