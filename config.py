"""Configuration loading for guardrail projection runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import numpy as np
import yaml

from geometry.halfspace import Halfspace
from geometry.vector import Vector2, normalize
from solver.projection import (
    DEFAULT_TOLERANCE,
    ProjectionInput,
    clamp_step,
    gradient_from_step,
)


@dataclass
class ProjectionConfig:
    halfspaces: List[Halfspace]
    eta: float = 1.0
    tolerance: float = DEFAULT_TOLERANCE
    clamp_factor: Optional[float] = None


@dataclass
class CaseConfig:
    name: str
    gradient: Optional[Vector2] = None
    raw_step: Optional[Vector2] = None
    eta: Optional[float] = None


@dataclass
class RunConfig:
    logging: bool = True
    strict: bool = False


@dataclass
class Config:
    projection: ProjectionConfig
    cases: List[CaseConfig]
    run: RunConfig = field(default_factory=RunConfig)
    base_path: Path = Path(".")

    def inputs(self) -> List[tuple[str, ProjectionInput]]:
        """Build one engine input per configured case, in file order."""
        return [(case.name, self.case_input(case)) for case in self.cases]

    def case_input(self, case: CaseConfig) -> ProjectionInput:
        eta = case.eta if case.eta is not None else self.projection.eta
        if case.gradient is not None:
            gradient = case.gradient
        elif case.raw_step is not None:
            if eta == 0:
                raise ValueError(f"case {case.name!r}: raw_step requires a non-zero eta")
            raw_step = case.raw_step
            if self.projection.clamp_factor is not None:
                raw_step = clamp_step(
                    raw_step, self.projection.halfspaces, factor=self.projection.clamp_factor
                )
            gradient = gradient_from_step(raw_step, eta)
        else:
            raise ValueError(f"case {case.name!r} needs either gradient or raw_step")
        return ProjectionInput(
            gradient=gradient,
            eta=eta,
            halfspaces=tuple(self.projection.halfspaces),
            tolerance=self.projection.tolerance,
        )


def _load_array(path: Path) -> np.ndarray:
    if not path.exists():
        raise FileNotFoundError(path)
    if path.suffix == ".npy":
        return np.load(path)
    if path.suffix in {".csv", ".txt"}:
        return np.loadtxt(path, delimiter=",")
    raise ValueError(f"unsupported matrix file type: {path}")


def _vector(spec: Any, what: str) -> Vector2:
    try:
        return Vector2.from_iterable(spec)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{what} must be a pair of numbers, got {spec!r}") from exc


def _halfspace_from_raw(raw: dict, index: int) -> Halfspace:
    hs_id = str(raw.get("id", f"h{index + 1}"))
    if "normal" not in raw or "bound" not in raw:
        raise ValueError(f"halfspace {hs_id!r} needs both normal and bound")
    normal = _vector(raw["normal"], f"normal of {hs_id!r}")
    if raw.get("normalize", False):
        normal = normalize(normal)
    return Halfspace(
        id=hs_id,
        label=str(raw.get("label", hs_id)),
        normal=normal,
        bound=float(raw["bound"]),
        active=bool(raw.get("active", True)),
    )


def _halfspaces_from_arrays(normals: np.ndarray, bounds: np.ndarray) -> List[Halfspace]:
    normals = np.asarray(normals, dtype=float).reshape(-1, 2)
    bounds = np.asarray(bounds, dtype=float).reshape(-1)
    if normals.shape[0] != bounds.size:
        raise ValueError(
            f"normals has {normals.shape[0]} rows but bounds has {bounds.size} entries"
        )
    return [
        Halfspace(
            id=f"h{idx + 1}",
            label=f"h{idx + 1}",
            normal=Vector2(float(row[0]), float(row[1])),
            bound=float(bound),
        )
        for idx, (row, bound) in enumerate(zip(normals, bounds))
    ]


def _check_unique_ids(halfspaces: List[Halfspace]) -> None:
    seen = set()
    for halfspace in halfspaces:
        if halfspace.id in seen:
            raise ValueError(f"duplicate halfspace id: {halfspace.id}")
        seen.add(halfspace.id)


def _case_from_raw(raw: dict, index: int) -> CaseConfig:
    name = str(raw.get("name", f"case{index + 1}"))
    gradient = raw.get("gradient")
    raw_step = raw.get("raw_step")
    if (gradient is None) == (raw_step is None):
        raise ValueError(f"case {name!r} needs exactly one of gradient or raw_step")
    eta = raw.get("eta")
    return CaseConfig(
        name=name,
        gradient=_vector(gradient, f"gradient of {name!r}") if gradient is not None else None,
        raw_step=_vector(raw_step, f"raw_step of {name!r}") if raw_step is not None else None,
        eta=float(eta) if eta is not None else None,
    )


def parse_config(raw: dict, base: Path = Path(".")) -> Config:
    projection_raw = raw.get("projection") or {}
    run_raw = raw.get("run") or {}
    cases_raw = raw.get("cases") or []

    if "normals_path" in projection_raw:
        if "bounds_path" not in projection_raw:
            raise ValueError("normals_path requires bounds_path")
        halfspaces = _halfspaces_from_arrays(
            _load_array(base / projection_raw["normals_path"]),
            _load_array(base / projection_raw["bounds_path"]),
        )
    else:
        halfspaces = [
            _halfspace_from_raw(item, idx)
            for idx, item in enumerate(raw.get("halfspaces") or [])
        ]
    _check_unique_ids(halfspaces)

    clamp_factor = projection_raw.get("clamp_factor")
    projection = ProjectionConfig(
        halfspaces=halfspaces,
        eta=float(projection_raw.get("eta", 1.0)),
        tolerance=float(projection_raw.get("tolerance", DEFAULT_TOLERANCE)),
        clamp_factor=float(clamp_factor) if clamp_factor is not None else None,
    )
    if projection.tolerance <= 0:
        raise ValueError("tolerance must be positive")

    cases = [_case_from_raw(item, idx) for idx, item in enumerate(cases_raw)]
    if not cases:
        raise ValueError("configuration lists no cases")

    run = RunConfig(
        logging=bool(run_raw.get("logging", True)),
        strict=bool(run_raw.get("strict", False)),
    )

    return Config(projection=projection, cases=cases, run=run, base_path=base)


def load_config(path: str | Path) -> Config:
    cfg_path = Path(path).expanduser().resolve()
    with cfg_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    return parse_config(raw, cfg_path.parent)
