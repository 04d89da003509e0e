"""Dense Gaussian elimination with partial pivoting for small systems."""

from __future__ import annotations

from typing import Optional

import numpy as np

PIVOT_TOL = 1e-10


def solve_linear_system(
    A: np.ndarray,
    b: np.ndarray,
    *,
    tol: float = PIVOT_TOL,
) -> Optional[np.ndarray]:
    """Solve ``A x = b`` or return ``None`` when the system is numerically singular.

    The inputs are copied; neither ``A`` nor ``b`` is modified.
    """
    a = np.array(A, dtype=float, copy=True)
    rhs = np.array(b, dtype=float, copy=True).reshape(-1)

    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError("coefficient matrix must be square")
    n = rhs.size
    if a.shape[0] != n:
        raise ValueError("right-hand side must match the matrix dimension")

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(a[col:, col])))
        if abs(a[pivot_row, col]) < tol:
            return None

        if pivot_row != col:
            a[[col, pivot_row], :] = a[[pivot_row, col], :]
            rhs[[col, pivot_row]] = rhs[[pivot_row, col]]

        pivot = a[col, col]
        for row in range(col + 1, n):
            factor = a[row, col] / pivot
            if abs(factor) < tol:
                continue
            a[row, col:] -= factor * a[col, col:]
            rhs[row] -= factor * rhs[col]

    x = np.zeros(n, dtype=float)
    for row in range(n - 1, -1, -1):
        diagonal = a[row, row]
        if abs(diagonal) < tol:
            return None
        residual = rhs[row] - float(a[row, row + 1 :] @ x[row + 1 :])
        x[row] = residual / diagonal
    return x
