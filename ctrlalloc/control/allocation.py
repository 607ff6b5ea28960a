from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from ctrlalloc.control.effectiveness import NUM_AXES, ControlAxis
from ctrlalloc.control.geninv import geninv

# Direction components smaller than this cannot move an actuator back into range.
DESATURATION_EPSILON = float(np.finfo(np.float32).eps)

DEFAULT_NUM_ACTUATORS = 16

# Lowest priority first: yaw is given up first, vertical thrust last.
DEFAULT_AXIS_PRIO_INCREASING: tuple[ControlAxis, ...] = (
    ControlAxis.YAW,
    ControlAxis.THRUST_X,
    ControlAxis.THRUST_Y,
    ControlAxis.ROLL,
    ControlAxis.PITCH,
    ControlAxis.THRUST_Z,
)


def _as_vector(x, n: int, *, name: str) -> np.ndarray:
    """
    Accept scalar or length-n sequence and return (n,) float array.
    """
    if isinstance(x, (int, float, np.floating, np.integer)):
        return np.full((n,), float(x), dtype=float)
    a = np.asarray(x, dtype=float).reshape(-1)
    if a.size != n:
        raise ValueError(f"{name} must be scalar or length-{n}, got shape={np.shape(x)}")
    return a


def _as_priority(order) -> np.ndarray:
    p = np.asarray([int(a) for a in order], dtype=int)
    if p.shape != (NUM_AXES,) or sorted(p.tolist()) != list(range(NUM_AXES)):
        raise ValueError(f"axis priority must be a permutation of 0..{NUM_AXES - 1}, got {list(order)}")
    return p


@dataclass(frozen=True)
class AllocationConfig:
    """
    Out-of-band configuration owned by an allocator.

    effectiveness: (NUM_AXES, N) actuator -> control map
    actuator_min / actuator_max: scalar or (N,) bounds
    axis_prio_increasing: permutation of ControlAxis, lowest priority first
    """

    effectiveness: np.ndarray
    actuator_min: float | np.ndarray = 0.0
    actuator_max: float | np.ndarray = 1.0
    axis_prio_increasing: tuple[int, ...] = field(default=DEFAULT_AXIS_PRIO_INCREASING)


@dataclass(frozen=True)
class AllocationResult:
    """
    Snapshot of one allocation cycle.

    actuator_raw: A @ control_sp, before any constraint handling
    actuator_desaturated: after the desaturation passes, before clipping
    actuator_sp: final clipped command
    control_allocated: B @ actuator_sp
    residual: control_sp - control_allocated
    """

    control_sp: np.ndarray  # (NUM_AXES,)
    actuator_raw: np.ndarray  # (N,)
    actuator_desaturated: np.ndarray  # (N,)
    actuator_sp: np.ndarray  # (N,)
    control_allocated: np.ndarray  # (NUM_AXES,)
    residual: np.ndarray  # (NUM_AXES,)
    saturated: bool
    mode: str


class ControlAllocation:
    """
    Common state of a control allocator.

    Holds the effectiveness matrix B and its generalized inverse A, the
    actuator bounds, the axis priority order and the per-cycle vectors.
    All buffers are sized once at construction; allocate() reuses them.
    """

    mode = "none"

    def __init__(self, num_actuators: int = DEFAULT_NUM_ACTUATORS):
        N = int(num_actuators)
        if N < 1:
            raise ValueError(f"num_actuators must be >= 1, got {N}")
        self._num_actuators = N

        self._B = np.zeros((NUM_AXES, N), dtype=float)
        self._A = np.zeros((N, NUM_AXES), dtype=float)

        self._control_sp = np.zeros((NUM_AXES,), dtype=float)
        self._control_allocated = np.zeros((NUM_AXES,), dtype=float)

        self._actuator_raw = np.zeros((N,), dtype=float)
        self._actuator_desaturated = np.zeros((N,), dtype=float)
        self._actuator_sp = np.zeros((N,), dtype=float)
        self._actuator_min = np.zeros((N,), dtype=float)
        self._actuator_max = np.ones((N,), dtype=float)

        self._axis_prio_increasing = _as_priority(DEFAULT_AXIS_PRIO_INCREASING)

    @classmethod
    def from_config(cls, config: AllocationConfig):
        B = np.asarray(config.effectiveness, dtype=float)
        if B.ndim != 2:
            raise ValueError(f"effectiveness must be 2-D, got shape={B.shape}")
        alloc = cls(num_actuators=int(B.shape[1]))
        alloc.configure(config)
        return alloc

    @property
    def num_actuators(self) -> int:
        return self._num_actuators

    def configure(self, config: AllocationConfig):
        """Apply a full configuration; bounds are checked for min <= max."""
        lo = _as_vector(config.actuator_min, self._num_actuators, name="actuator_min")
        hi = _as_vector(config.actuator_max, self._num_actuators, name="actuator_max")
        if np.any(lo > hi):
            raise ValueError(f"actuator_min must be <= actuator_max, got min={lo} max={hi}")
        prio = _as_priority(config.axis_prio_increasing)

        self.set_effectiveness_matrix(config.effectiveness)
        self._actuator_min[:] = lo
        self._actuator_max[:] = hi
        self._axis_prio_increasing = prio

    # --- effectiveness model ---

    def set_effectiveness_matrix(self, B: np.ndarray):
        """
        Store B and recompute A = B^+ in the same call.

        Singular and rank-deficient matrices are accepted; A is then the
        minimum-norm least-squares inverse.
        """
        B = np.asarray(B, dtype=float)
        if B.shape != (NUM_AXES, self._num_actuators):
            raise ValueError(f"effectiveness must be ({NUM_AXES},{self._num_actuators}), got {B.shape}")
        A = geninv(B)
        self._B[:, :] = B
        self._A[:, :] = A

    def get_effectiveness_matrix(self) -> np.ndarray:
        return self._B.copy()

    def get_allocation_matrix(self) -> np.ndarray:
        return self._A.copy()

    # --- bounds / priority / setpoints ---

    def set_actuator_min(self, actuator_min):
        self._actuator_min[:] = _as_vector(actuator_min, self._num_actuators, name="actuator_min")

    def set_actuator_max(self, actuator_max):
        self._actuator_max[:] = _as_vector(actuator_max, self._num_actuators, name="actuator_max")

    def get_actuator_min(self) -> np.ndarray:
        return self._actuator_min.copy()

    def get_actuator_max(self) -> np.ndarray:
        return self._actuator_max.copy()

    def set_axis_priority_increasing(self, order):
        self._axis_prio_increasing = _as_priority(order)

    def get_axis_priority_increasing(self) -> tuple[ControlAxis, ...]:
        return tuple(ControlAxis(int(a)) for a in self._axis_prio_increasing)

    def set_control_setpoint(self, control_sp):
        self._control_sp[:] = _as_vector(control_sp, NUM_AXES, name="control_sp")

    def get_control_setpoint(self) -> np.ndarray:
        return self._control_sp.copy()

    def set_actuator_setpoint(self, actuator_sp):
        """
        Overwrite the actuator setpoint (e.g. from an external source), clip it
        and recompute the control it achieves.
        """
        u = _as_vector(actuator_sp, self._num_actuators, name="actuator_sp")
        self._actuator_raw[:] = u
        self._actuator_desaturated[:] = u
        self._actuator_sp[:] = u
        self.clip_actuator_setpoint()
        np.matmul(self._B, self._actuator_sp, out=self._control_allocated)

    def get_actuator_setpoint(self) -> np.ndarray:
        return self._actuator_sp.copy()

    def get_allocated_control(self) -> np.ndarray:
        return self._control_allocated.copy()

    def clip_actuator_setpoint(self) -> np.ndarray:
        np.clip(self._actuator_sp, self._actuator_min, self._actuator_max, out=self._actuator_sp)
        return self._actuator_sp

    # --- per cycle ---

    def allocate(self):
        raise NotImplementedError

    def result(self) -> AllocationResult:
        saturated = bool(np.any(np.abs(self._actuator_sp - self._actuator_raw) > 1e-12))
        return AllocationResult(
            control_sp=self._control_sp.copy(),
            actuator_raw=self._actuator_raw.copy(),
            actuator_desaturated=self._actuator_desaturated.copy(),
            actuator_sp=self._actuator_sp.copy(),
            control_allocated=self._control_allocated.copy(),
            residual=self._control_sp - self._control_allocated,
            saturated=saturated,
            mode=self.mode,
        )


class ControlAllocationPseudoInverse(ControlAllocation):
    """
    Unconstrained allocation A @ c followed by a hard clip.
    """

    mode = "pinv"

    def allocate(self):
        np.matmul(self._A, self._control_sp, out=self._actuator_raw)
        self._actuator_desaturated[:] = self._actuator_raw
        self._actuator_sp[:] = self._actuator_raw
        self.clip_actuator_setpoint()
        np.matmul(self._B, self._actuator_sp, out=self._control_allocated)


class ControlAllocationMultirotor(ControlAllocationPseudoInverse):
    """
    Pseudo-inverse allocation with sequential desaturation.

    Per cycle:
      1) u = A @ c
      2) for each axis, lowest priority first: shift u along A[:,axis]
         to pull saturated actuators back (one full step, then one half step)
      3) clip u to [min, max]
      4) achieved control = B @ u

    Working on the lowest priority axis first means corrections injected for
    it are still subject to the later passes of the higher priority axes.
    """

    mode = "desat"

    def allocate(self):
        np.matmul(self._A, self._control_sp, out=self._actuator_raw)
        u = self._actuator_desaturated
        u[:] = self._actuator_raw
        for axis in self._axis_prio_increasing:
            self._desaturate_in_place(u, int(axis))

        self._actuator_sp[:] = u
        self.clip_actuator_setpoint()
        np.matmul(self._B, self._actuator_sp, out=self._control_allocated)

    def desaturate(self, actuator_sp: np.ndarray) -> np.ndarray:
        """All desaturation passes in priority order, without clipping."""
        u = _as_vector(actuator_sp, self._num_actuators, name="actuator_sp").copy()
        for axis in self._axis_prio_increasing:
            self._desaturate_in_place(u, int(axis))
        return u

    def desaturate_actuators(self, actuator_sp: np.ndarray, axis: int) -> np.ndarray:
        u = _as_vector(actuator_sp, self._num_actuators, name="actuator_sp").copy()
        self._desaturate_in_place(u, int(axis))
        return u

    def _desaturate_in_place(self, u: np.ndarray, axis: int):
        d = self._A[:, axis]

        gain = self.compute_desaturation_gain(d, u)
        u += gain * d

        # Second, damped step: full steps can overshoot when actuators cross
        # their bounds at different rates along d.
        gain = self.compute_desaturation_gain(d, u)
        u += 0.5 * gain * d

    def get_desaturation_vector(self, axis: int) -> np.ndarray:
        return self._A[:, int(axis)].copy()

    def compute_desaturation_gain(self, desaturation_vector: np.ndarray, actuator_sp: np.ndarray) -> float:
        """
        Gain k such that actuator_sp + k * desaturation_vector reduces saturation.

        For every saturated actuator the k that brings it exactly onto its
        violated bound is computed; the most negative and most positive of
        these (both starting at 0) are summed. With violations on both sides
        the two extremes partially cancel, which centers the correction.
        Actuators whose direction component is below DESATURATION_EPSILON are
        ignored.
        """
        d = np.asarray(desaturation_vector, dtype=float).reshape(self._num_actuators)
        u = np.asarray(actuator_sp, dtype=float).reshape(self._num_actuators)
        lo = self._actuator_min
        hi = self._actuator_max

        usable = np.abs(d) >= DESATURATION_EPSILON
        below = usable & (u < lo)
        above = usable & (u > hi)

        k = np.zeros((self._num_actuators,), dtype=float)
        k[below] = (lo[below] - u[below]) / d[below]
        k[above] = (hi[above] - u[above]) / d[above]

        k_min = min(0.0, float(np.min(k)))
        k_max = max(0.0, float(np.max(k)))
        return k_min + k_max
