from __future__ import annotations

import numpy as np


def geninv(M: np.ndarray, *, rtol: float | None = None) -> np.ndarray:
    """
    Moore-Penrose generalized inverse M^+ via SVD.

    M = U S V^T  ->  M^+ = V S^+ U^T
    Singular values below rtol * s_max are treated as zero, so:
      - full row rank (more columns than rows): right inverse, minimum-norm solution
      - full column rank: left inverse, least-squares solution
      - rank deficient / all-zero: minimum-norm least-squares, never raises
    """
    M = np.asarray(M, dtype=float)
    if M.ndim != 2:
        raise ValueError(f"M must be 2-D, got shape={M.shape}")

    m, n = M.shape
    if m == 0 or n == 0:
        return np.zeros((n, m), dtype=float)

    U, s, Vt = np.linalg.svd(M, full_matrices=False)
    tol = (max(m, n) * float(np.finfo(float).eps)) if rtol is None else float(rtol)
    cutoff = tol * float(np.max(s))

    s_inv = np.zeros_like(s)
    nz = s > cutoff
    s_inv[nz] = 1.0 / s[nz]
    return (Vt.T * s_inv) @ U.T


def matrix_rank(M: np.ndarray, *, rtol: float | None = None) -> int:
    """Numerical rank with the same cutoff as geninv()."""
    M = np.asarray(M, dtype=float)
    if M.size == 0:
        return 0
    s = np.linalg.svd(M, compute_uv=False)
    tol = (max(M.shape) * float(np.finfo(float).eps)) if rtol is None else float(rtol)
    return int(np.count_nonzero(s > tol * float(np.max(s))))
