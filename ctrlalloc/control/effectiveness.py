from __future__ import annotations

from enum import IntEnum

import numpy as np


class ControlAxis(IntEnum):
    ROLL = 0
    PITCH = 1
    YAW = 2
    THRUST_X = 3
    THRUST_Y = 4
    THRUST_Z = 5


NUM_AXES = len(ControlAxis)


def build_effectiveness_matrix(
    *,
    r_body: np.ndarray,
    n_body: np.ndarray,
    C_T: float = 1.0,
    C_Q: float = 0.0,
    spin_dir: np.ndarray | None = None,
) -> np.ndarray:
    """
    Effectiveness matrix B (NUM_AXES, N) from rotor geometry.

    Control vector order follows ControlAxis:
      c = [tau_x, tau_y, tau_z, F_x, F_y, F_z]^T
    Actuator i produces thrust along its normal n_i:
      F_i   = C_T * u_i * n_i
      tau_i = C_T * u_i * (r_i x n_i) + s_i * C_Q * u_i * n_i
    so column i is:
      B[:,i] = [C_T*(r×n) + s*C_Q*n, C_T*n]
    """
    r = np.asarray(r_body, dtype=float)
    n = np.asarray(n_body, dtype=float)
    if r.ndim != 2 or r.shape[1] != 3:
        raise ValueError(f"r_body must be (N,3), got {r.shape}")
    if n.ndim != 2 or n.shape[1] != 3 or n.shape[0] != r.shape[0]:
        raise ValueError(f"n_body must be (N,3) and match r_body, got {n.shape} vs {r.shape}")

    N = int(r.shape[0])
    if spin_dir is None:
        s = np.ones((N,), dtype=float)
    else:
        s = np.asarray(spin_dir, dtype=float).reshape(N)

    B = np.zeros((NUM_AXES, N), dtype=float)
    rn = np.cross(r, n)  # (N,3)
    B[ControlAxis.ROLL : ControlAxis.YAW + 1, :] = (float(C_T) * rn + float(C_Q) * s[:, None] * n).T
    B[ControlAxis.THRUST_X :, :] = (float(C_T) * n).T
    return B


def multirotor_geometry(
    *,
    num_rotors: int = 4,
    arm_length: float = 0.2,
    start_angle_deg: float | None = None,
    first_spin: float = 1.0,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Planar X layout: rotors evenly spaced on a circle, normals +z, alternating spin.

    Returns (r_body (N,3), n_body (N,3), spin_dir (N,)).
    The default start angle puts the first rotor at +45 deg for a quad and at
    180/N deg in general, so the body x axis points between two arms.
    """
    N = int(num_rotors)
    if N < 1:
        raise ValueError(f"num_rotors must be >= 1, got {N}")
    a0 = (180.0 / N) if start_angle_deg is None else float(start_angle_deg)
    ang = np.deg2rad(a0 + 360.0 / N * np.arange(N, dtype=float))

    L = float(arm_length)
    r = np.stack([L * np.cos(ang), L * np.sin(ang), np.zeros((N,), dtype=float)], axis=1)
    n = np.tile(np.array([0.0, 0.0, 1.0], dtype=float), (N, 1))
    s = float(first_spin) * np.where(np.arange(N) % 2 == 0, 1.0, -1.0)
    return r, n, s


def disable_actuators(B: np.ndarray, indices) -> np.ndarray:
    """
    Copy of B with the given actuator columns zeroed (actuator loss).
    """
    out = np.array(B, dtype=float, copy=True)
    if out.ndim != 2:
        raise ValueError(f"B must be 2-D, got shape={out.shape}")
    for i in indices:
        i = int(i)
        if not 0 <= i < out.shape[1]:
            raise ValueError(f"actuator index {i} out of range for {out.shape[1]} actuators")
        out[:, i] = 0.0
    return out
