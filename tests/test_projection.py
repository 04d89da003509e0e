import math

import numpy as np
import pytest
from scipy.optimize import minimize

import solver.projection as projection
from geometry.halfspace import Halfspace
from geometry.vector import Vector2, add
from solver.active_set import ActiveSetSolver, CandidateSearch, objective
from solver.projection import (
    ProjectionInput,
    clamp_step,
    compute_projected_step,
    correction_consistency_error,
    gradient_from_step,
)


def _halfspace(hs_id, nx, ny, bound, active=True):
    return Halfspace(id=hs_id, label=hs_id, normal=Vector2(nx, ny), bound=bound, active=active)


def _project(gradient, eta, halfspaces, **kwargs):
    return compute_projected_step(
        ProjectionInput(
            gradient=Vector2(*gradient),
            eta=eta,
            halfspaces=tuple(halfspaces),
            **kwargs,
        )
    )


def test_feasible_step_passes_through():
    constraints = [
        _halfspace("h1", 1, 0, 1),
        _halfspace("h2", -1, 0, 1),
        _halfspace("h3", 0, 1, 1),
        _halfspace("h4", 0, -1, 1),
    ]
    result = _project((0.2, 0.1), 1.0, constraints)

    assert result.ship
    assert result.reason is None
    assert result.projected_step.x == pytest.approx(-0.2, abs=1e-9)
    assert result.projected_step.y == pytest.approx(-0.1, abs=1e-9)
    assert result.active_set_ids == ()
    assert result.max_violation_projected <= 1e-9
    assert result.stationarity_residual <= 1e-9
    assert correction_consistency_error(result) <= 1e-9
    assert result.descent_retained_ratio == pytest.approx(1.0)


def test_single_binding_constraint():
    result = _project((-1.0, 0.0), 1.0, [_halfspace("h1", 1, 0, 0.5)])

    assert result.ship
    assert result.projected_step.x == pytest.approx(0.5, abs=1e-8)
    assert result.projected_step.y == pytest.approx(0.0, abs=1e-8)
    assert result.lambda_by_id["h1"] == pytest.approx(0.5, abs=1e-7)
    assert result.active_set_ids == ("h1",)
    assert result.stationarity_residual < 1e-7
    assert result.diagnostics[0].is_binding
    assert result.descent_retained_ratio == pytest.approx(0.5)


def test_two_binding_constraints_reconstruct_step():
    constraints = [_halfspace("h1", 1, 0, 0.4), _halfspace("h2", 0, 1, 0.3)]
    result = _project((-1.0, -1.0), 1.0, constraints)

    assert result.ship
    np.testing.assert_allclose(
        [result.projected_step.x, result.projected_step.y], [0.4, 0.3], atol=1e-8
    )
    assert result.lambda_by_id["h1"] == pytest.approx(0.6, abs=1e-7)
    assert result.lambda_by_id["h2"] == pytest.approx(0.7, abs=1e-7)
    assert result.active_set_ids == ("h1", "h2")

    rebuilt = add(result.step0, add(result.correction_by_id["h1"], result.correction_by_id["h2"]))
    assert rebuilt.x == pytest.approx(result.projected_step.x, abs=1e-7)
    assert rebuilt.y == pytest.approx(result.projected_step.y, abs=1e-7)
    assert correction_consistency_error(result) < 1e-7


def test_empty_region_holds():
    constraints = [_halfspace("h1", 1, 0, -0.2), _halfspace("h2", -1, 0, -0.2)]
    result = _project((-1.0, 0.0), 0.7, constraints)

    assert not result.ship
    assert "empty" in result.reason.lower()
    assert result.max_violation_projected > 0
    assert result.projected_step == result.step0
    assert result.search is None


@pytest.mark.parametrize("eta", [0.0, -1.0, 1e-9, math.inf, math.nan])
def test_invalid_eta_holds(eta):
    result = _project((1.0, 0.0), eta, [_halfspace("h1", 1, 0, 0.5)])
    assert not result.ship
    assert "positive" in result.reason
    assert result.active_set_ids == ()


def test_no_active_halfspaces_ships_unconstrained_step():
    constraints = [_halfspace("h1", 1, 0, 0.5, active=False)]
    result = _project((-1.0, 0.0), 1.0, constraints)

    assert result.ship
    assert result.projected_step == Vector2(1.0, 0.0)
    assert result.lambda_by_id == {"h1": 0.0}
    assert result.correction_by_id == {"h1": Vector2(0.0, 0.0)}
    assert result.max_violation_projected == 0.0
    assert result.diagnostics[0].violation_step0 == 0.0
    assert not result.diagnostics[0].is_binding


def test_inactive_halfspace_is_reported_but_ignored():
    constraints = [
        _halfspace("off", -1, 0, -5.0, active=False),
        _halfspace("h1", 1, 0, 0.5),
    ]
    result = _project((-1.0, 0.0), 1.0, constraints)

    assert result.ship
    assert list(result.lambda_by_id) == ["off", "h1"]
    assert [diag.id for diag in result.diagnostics] == ["off", "h1"]
    assert result.lambda_by_id["off"] == 0.0
    assert result.active_set_ids == ("h1",)


def test_singular_solves_report_instability():
    # A zero normal makes every KKT system singular while the clip region stays non-empty.
    result = _project((1.0, 0.0), 1.0, [_halfspace("z", 0, 0, -1e-9)], tolerance=1e-10)
    assert not result.ship
    assert "instability" in result.reason
    assert result.search.linear_solve_failures == 1


def test_rejected_candidates_report_no_feasible_step(monkeypatch):
    # Real 2-D inputs that reject every subset almost always include a singular
    # one (any three constraints), which selects the instability reason instead.
    class _NoCandidates:
        def __init__(self, **kwargs):
            pass

        def search(self, gradient, eta, halfspaces):
            return CandidateSearch(candidates=(), subsets_examined=2, primal_rejections=2)

    monkeypatch.setattr(projection, "ActiveSetSolver", _NoCandidates)
    result = _project((-1.0, 0.0), 1.0, [_halfspace("h1", 1, 0, 0.5)])
    assert not result.ship
    assert result.reason == projection.REASON_NO_CANDIDATE
    assert result.projected_step == result.step0


def test_tie_break_prefers_first_subset():
    duplicate = [_halfspace("a", 1, 0, 0.5), _halfspace("b", 1, 0, 0.5)]
    search = ActiveSetSolver(tol=1e-7).search(Vector2(-1.0, 0.0), 1.0, duplicate)

    assert search.linear_solve_failures == 1
    assert [cand.mask for cand in search.candidates] == [1, 2]
    assert search.best.mask == 1
    assert search.best.subset == (0,)

    result = _project((-1.0, 0.0), 1.0, duplicate)
    assert result.lambda_by_id == pytest.approx({"a": 0.5, "b": 0.0})
    assert result.active_set_ids == ("a",)


def test_small_negative_multiplier_is_clamped_and_large_one_rejected():
    cap = [_halfspace("x", 1, 0, 0.5)]
    solver = ActiveSetSolver(tol=1e-7)

    # Binding at x = 0.5 needs lambda = -5e-8, inside the tolerance band.
    admitted = solver.search(Vector2(-0.5 + 5e-8, 0.0), 1.0, cap)
    assert [cand.mask for cand in admitted.candidates] == [0, 1]
    assert admitted.candidates[1].lambdas == (0.0,)
    assert admitted.dual_rejections == 0

    # lambda = -2e-7 is below -tol.
    rejected = solver.search(Vector2(-0.5 + 2e-7, 0.0), 1.0, cap)
    assert [cand.mask for cand in rejected.candidates] == [0]
    assert rejected.dual_rejections == 1


def test_result_maps_are_read_only():
    result = _project((-1.0, 0.0), 1.0, [_halfspace("h1", 1, 0, 0.5)])
    with pytest.raises(TypeError):
        result.lambda_by_id["h1"] = 1.0
    with pytest.raises(TypeError):
        result.correction_by_id["h1"] = Vector2(0.0, 0.0)
    assert result.lambda_by_id == pytest.approx({"h1": 0.5})


def test_results_are_deterministic():
    constraints = [
        _halfspace("h1", 0.6, 0.8, 0.3),
        _halfspace("h2", -0.8, 0.6, 0.2),
        _halfspace("h3", 0.0, -1.0, 0.4),
    ]
    first = _project((-0.9, -0.7), 0.8, constraints)
    second = _project((-0.9, -0.7), 0.8, constraints)
    assert first == second


def test_gradient_from_step_and_clamp():
    gradient = gradient_from_step(Vector2(1.0, -2.0), 0.5)
    assert gradient == Vector2(-2.0, 4.0)

    constraints = [_halfspace("h1", 1, 0, 1.0)]
    short = Vector2(0.5, 0.5)
    assert clamp_step(short, constraints) is short
    clamped = clamp_step(Vector2(10.0, 0.0), constraints, factor=1.0)
    assert clamped.x == pytest.approx(1.9)
    assert clamped.y == 0.0


def _random_problem(seed):
    rng = np.random.default_rng(seed)
    count = int(rng.integers(1, 7))
    halfspaces = []
    for idx in range(count):
        angle = rng.uniform(0.0, 2.0 * np.pi)
        halfspaces.append(
            _halfspace(
                f"h{idx}",
                float(np.cos(angle)),
                float(np.sin(angle)),
                float(rng.uniform(-0.3, 1.0)),
                active=bool(rng.random() > 0.15),
            )
        )
    gradient = rng.normal(size=2)
    eta = float(rng.uniform(0.2, 2.0))
    return ProjectionInput(
        gradient=Vector2(float(gradient[0]), float(gradient[1])),
        eta=eta,
        halfspaces=tuple(halfspaces),
    )


def _reference_objective(problem):
    g = problem.gradient.as_array()
    eta = problem.eta
    constraints = [
        {
            "type": "ineq",
            "fun": lambda s, h=h: h.bound - float(h.normal.as_array() @ s),
            "jac": lambda s, h=h: -h.normal.as_array(),
        }
        for h in problem.halfspaces
        if h.active
    ]
    res = minimize(
        lambda s: float(g @ s + s @ s / (2.0 * eta)),
        x0=np.zeros(2),
        jac=lambda s: g + s / eta,
        constraints=constraints,
        method="SLSQP",
        options={"ftol": 1e-12, "maxiter": 500},
    )
    worst = max(
        (float(h.normal.as_array() @ res.x) - h.bound for h in problem.halfspaces if h.active),
        default=0.0,
    )
    return res, worst


@pytest.mark.parametrize("seed", range(40))
def test_random_problems_satisfy_kkt_certificates(seed):
    problem = _random_problem(seed)
    result = compute_projected_step(problem)
    tol = problem.tolerance

    if not result.ship:
        assert result.reason
        assert result.projected_step == result.step0
        return

    for diag in result.diagnostics:
        assert diag.lam >= -1e-9
        if diag.active:
            assert diag.violation_projected <= tol
            if diag.lam > tol:
                assert abs(diag.violation_projected) <= 8 * tol
    assert correction_consistency_error(result) <= 1e-6
    assert result.stationarity_residual <= 1e-6

    step0 = result.step0
    assert result.objective_projected >= objective(problem.gradient, problem.eta, step0) - 1e-12
    for candidate in result.search.candidates:
        assert result.objective_projected <= candidate.objective

    res, worst = _reference_objective(problem)
    if res.success and worst <= 1e-7:
        assert result.objective_projected == pytest.approx(res.fun, abs=1e-5)


@pytest.mark.parametrize("seed", range(40, 60))
def test_projection_never_beats_unconstrained_optimum(seed):
    problem = _random_problem(seed)
    result = compute_projected_step(problem)
    if result.ship and result.max_violation_step0 > problem.tolerance:
        assert result.objective_projected >= result.objective0
