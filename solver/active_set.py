"""Brute-force active-set search for the two-variable guardrail QP.

Every subset of the active halfspaces is treated as a hypothesis for the set
of binding constraints. Each hypothesis yields a KKT system

    [ I/eta   N^T ] [ step   ]   [ -g ]
    [ N       0   ] [ lambda ] = [  b ]

whose solution is kept only if it is dual feasible (lambda >= -tol) and
primal feasible against all active halfspaces. The search is exponential in
the number of halfspaces and intended for a handful of guardrails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from geometry.halfspace import Halfspace, is_step_feasible
from geometry.vector import Vector2, dot, scale, squared_norm
from solver.linear import PIVOT_TOL, solve_linear_system

logger = logging.getLogger(__name__)


def objective(gradient: Vector2, eta: float, step: Vector2) -> float:
    """Step-space quadratic ``g . s + |s|^2 / (2 eta)``."""
    return dot(gradient, step) + squared_norm(step) / (2.0 * eta)


@dataclass(frozen=True)
class Candidate:
    mask: int
    step: Vector2
    lambdas: Tuple[float, ...]
    objective: float

    @property
    def subset(self) -> Tuple[int, ...]:
        return subset_from_mask(self.mask, len(self.lambdas))


@dataclass(frozen=True)
class CandidateSearch:
    candidates: Tuple[Candidate, ...]
    subsets_examined: int = 0
    linear_solve_failures: int = 0
    dual_rejections: int = 0
    primal_rejections: int = 0
    best: Optional[Candidate] = field(default=None)

    @property
    def found(self) -> bool:
        return self.best is not None


def subset_from_mask(mask: int, n: int) -> Tuple[int, ...]:
    return tuple(bit for bit in range(n) if mask & (1 << bit))


def build_kkt_system(
    gradient: Vector2,
    eta: float,
    constraints: Sequence[Halfspace],
) -> Tuple[np.ndarray, np.ndarray]:
    m = len(constraints)
    dim = 2 + m
    matrix = np.zeros((dim, dim), dtype=float)
    rhs = np.zeros(dim, dtype=float)

    matrix[0, 0] = 1.0 / eta
    matrix[1, 1] = 1.0 / eta
    rhs[0] = -gradient.x
    rhs[1] = -gradient.y

    for row, constraint in enumerate(constraints):
        idx = 2 + row
        matrix[0, idx] = constraint.normal.x
        matrix[1, idx] = constraint.normal.y
        matrix[idx, 0] = constraint.normal.x
        matrix[idx, 1] = constraint.normal.y
        rhs[idx] = constraint.bound
    return matrix, rhs


class ActiveSetSolver:
    def __init__(self, *, tol: float = 1e-7, pivot_tol: float = PIVOT_TOL) -> None:
        self._tol = tol
        self._pivot_tol = pivot_tol

    def search(
        self,
        gradient: Vector2,
        eta: float,
        halfspaces: Sequence[Halfspace],
    ) -> CandidateSearch:
        """Enumerate subset masks ``0 .. 2^n - 1`` and collect admissible candidates.

        ``halfspaces`` must already be restricted to the active ones; the order
        of the list fixes the enumeration order and hence the tie-break.
        """
        n = len(halfspaces)
        step0 = scale(gradient, -eta)
        candidates: List[Candidate] = []
        failures = 0
        dual_rejections = 0
        primal_rejections = 0

        for mask in range(1 << n):
            if mask == 0:
                if is_step_feasible(step0, halfspaces, self._tol):
                    candidates.append(
                        Candidate(
                            mask=0,
                            step=step0,
                            lambdas=(0.0,) * n,
                            objective=objective(gradient, eta, step0),
                        )
                    )
                else:
                    primal_rejections += 1
                continue

            subset = subset_from_mask(mask, n)
            matrix, rhs = build_kkt_system(gradient, eta, [halfspaces[i] for i in subset])
            solution = solve_linear_system(matrix, rhs, tol=self._pivot_tol)
            if solution is None:
                failures += 1
                logger.debug("singular KKT system for subset %s", subset)
                continue

            step = Vector2(float(solution[0]), float(solution[1]))
            raw_lambdas = solution[2:]
            if np.any(raw_lambdas < -self._tol):
                dual_rejections += 1
                continue

            if not is_step_feasible(step, halfspaces, self._tol):
                primal_rejections += 1
                continue

            lambdas = [0.0] * n
            for idx, value in zip(subset, raw_lambdas):
                lambdas[idx] = max(0.0, float(value))
            candidates.append(
                Candidate(
                    mask=mask,
                    step=step,
                    lambdas=tuple(lambdas),
                    objective=objective(gradient, eta, step),
                )
            )

        # min() keeps the first of equal objectives, i.e. the lowest mask.
        best = min(candidates, key=lambda cand: cand.objective) if candidates else None
        logger.debug(
            "active-set search: n=%d subsets=%d candidates=%d failures=%d dual=%d primal=%d",
            n,
            1 << n,
            len(candidates),
            failures,
            dual_rejections,
            primal_rejections,
        )
        return CandidateSearch(
            candidates=tuple(candidates),
            subsets_examined=1 << n,
            linear_solve_failures=failures,
            dual_rejections=dual_rejections,
            primal_rejections=primal_rejections,
            best=best,
        )
