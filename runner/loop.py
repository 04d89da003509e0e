"""Evaluate configured cases through the projection engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from config import Config
from geometry.vector import Vector2, norm, sub
from solver.projection import (
    ProjectionInput,
    ProjectionResult,
    compute_projected_step,
    correction_consistency_error,
)

logger = logging.getLogger(__name__)


class ProjectionHoldError(RuntimeError):
    """Raised in strict mode when a case cannot ship."""


@dataclass(frozen=True)
class DecisionSummary:
    checks_total: int
    checks_violated_step0: int
    checks_violated_projected: int
    correction: Vector2
    correction_norm: float
    correction_norm_ratio: float
    dominant_constraint_id: Optional[str]


@dataclass
class CaseRecord:
    name: str
    problem: ProjectionInput
    result: ProjectionResult
    summary: DecisionSummary

    def to_dict(self) -> dict[str, Any]:
        result = self.result
        return {
            "case": self.name,
            "inputs": {
                "gradient": self.problem.gradient.to_list(),
                "eta": self.problem.eta,
                "tolerance": self.problem.tolerance,
            },
            "decision": "ship" if result.ship else "hold",
            "reason": result.reason,
            "step0": result.step0.to_list(),
            "projected_step": result.projected_step.to_list(),
            "active_constraints": list(result.active_set_ids),
            "lambdas": dict(result.lambda_by_id),
            "corrections": {key: vec.to_list() for key, vec in result.correction_by_id.items()},
            "metrics": {
                "objective0": result.objective0,
                "objective_projected": result.objective_projected,
                "stationarity_residual": result.stationarity_residual,
                "max_violation_step0": result.max_violation_step0,
                "max_violation_projected": result.max_violation_projected,
                "descent_retained_ratio": result.descent_retained_ratio,
                "consistency_error": correction_consistency_error(result),
                "checks_total": self.summary.checks_total,
                "checks_violated_step0": self.summary.checks_violated_step0,
                "checks_violated_projected": self.summary.checks_violated_projected,
                "correction_norm": self.summary.correction_norm,
                "correction_norm_ratio": self.summary.correction_norm_ratio,
                "dominant_constraint": self.summary.dominant_constraint_id,
            },
        }


def summarize(result: ProjectionResult, tolerance: float) -> DecisionSummary:
    active = [diag for diag in result.diagnostics if diag.active]
    correction = sub(result.step0, result.projected_step)
    correction_norm = norm(correction)
    raw_norm = max(1e-6, norm(result.step0))

    dominant: Optional[str] = None
    dominant_lambda = tolerance
    for diag in active:
        if diag.lam > dominant_lambda:
            dominant, dominant_lambda = diag.id, diag.lam

    return DecisionSummary(
        checks_total=len(active),
        checks_violated_step0=sum(1 for diag in active if diag.violation_step0 > tolerance),
        checks_violated_projected=sum(
            1 for diag in active if diag.violation_projected > tolerance
        ),
        correction=correction,
        correction_norm=correction_norm,
        correction_norm_ratio=min(max(correction_norm / raw_norm, 0.0), 2.0),
        dominant_constraint_id=dominant,
    )


def run_cases(cfg: Config) -> list[CaseRecord]:
    history: List[CaseRecord] = []
    for name, problem in cfg.inputs():
        result = compute_projected_step(problem)
        summary = summarize(result, problem.tolerance)

        if result.ship:
            logger.info(
                "%s: ship, active=%s, retained=%.4f",
                name,
                ",".join(result.active_set_ids) or "-",
                result.descent_retained_ratio,
            )
        else:
            logger.info("%s: hold (%s)", name, result.reason)
            if cfg.run.strict:
                raise ProjectionHoldError(f"case {name!r} cannot ship: {result.reason}")

        history.append(CaseRecord(name=name, problem=problem, result=result, summary=summary))
    return history


def ship_counts(history: List[CaseRecord]) -> Tuple[int, int]:
    shipped = sum(1 for record in history if record.result.ship)
    return shipped, len(history) - shipped
