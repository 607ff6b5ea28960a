from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class ActuatorModel:
    """
    Simple actuator response consuming the allocator's actuator setpoint.

    - first-order lag: du/dt = (cmd - u) / tau
    - optional rate limit: |du/dt| <= rate_limit
    - per-actuator saturation: u_min <= u <= u_max
    - failed actuators produce 0 regardless of command
    """

    num_actuators: int
    tau: float = 0.05  # [s]
    u_min: float | np.ndarray = 0.0
    u_max: float | np.ndarray = 1.0
    rate_limit: float | None = None  # [1/s]

    u: np.ndarray | None = None  # (N,) current output
    failed: np.ndarray | None = None  # (N,) bool

    def __post_init__(self):
        N = int(self.num_actuators)
        self._lo = np.broadcast_to(np.asarray(self.u_min, dtype=float), (N,)).copy()
        self._hi = np.broadcast_to(np.asarray(self.u_max, dtype=float), (N,)).copy()
        if self.failed is None:
            self.failed = np.zeros((N,), dtype=bool)

    def fail(self, index: int):
        i = int(index)
        if not 0 <= i < int(self.num_actuators):
            raise ValueError(f"actuator index {i} out of range for {self.num_actuators} actuators")
        self.failed[i] = True
        if self.u is not None:
            self.u[i] = 0.0

    def reset(self, u_init: np.ndarray):
        x = np.asarray(u_init, dtype=float).reshape(-1)
        if x.shape != self._lo.shape:
            raise ValueError(f"shape mismatch: expected {self._lo.shape}, got {x.shape}")
        self.u = self._saturate(x)

    def _saturate(self, x: np.ndarray) -> np.ndarray:
        x = np.clip(x, self._lo, self._hi)
        x[self.failed] = 0.0
        return x

    def step(self, u_cmd: np.ndarray, dt: float) -> np.ndarray:
        cmd = np.asarray(u_cmd, dtype=float).reshape(-1)
        if self.u is None:
            self.reset(np.zeros_like(cmd))

        x = np.asarray(self.u, dtype=float).reshape(-1)
        if x.shape != cmd.shape:
            raise ValueError(f"shape mismatch: state {x.shape} vs cmd {cmd.shape}")

        dt = float(dt)
        if dt <= 0.0:
            return x.copy()

        cmd = self._saturate(cmd)

        tau = max(1e-6, float(self.tau))
        alpha = dt / (tau + dt)
        x_next = x + alpha * (cmd - x)

        if self.rate_limit is not None:
            dx_max = max(0.0, float(self.rate_limit)) * dt
            x_next = x + np.clip(x_next - x, -dx_max, dx_max)

        self.u = self._saturate(x_next)
        return self.u.copy()
