from .active_set import ActiveSetSolver, Candidate, CandidateSearch, objective
from .linear import solve_linear_system
from .projection import (
    ConstraintDiagnostic,
    ProjectionInput,
    ProjectionResult,
    clamp_step,
    compute_projected_step,
    correction_consistency_error,
    gradient_from_step,
)

__all__ = [
    "ActiveSetSolver",
    "Candidate",
    "CandidateSearch",
    "ConstraintDiagnostic",
    "ProjectionInput",
    "ProjectionResult",
    "clamp_step",
    "compute_projected_step",
    "correction_consistency_error",
    "gradient_from_step",
    "objective",
    "solve_linear_system",
]
