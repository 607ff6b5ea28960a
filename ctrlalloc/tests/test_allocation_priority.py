import unittest

import numpy as np

from ctrlalloc.control.allocation import (
    DEFAULT_AXIS_PRIO_INCREASING,
    AllocationConfig,
    ControlAllocationMultirotor,
)
from ctrlalloc.control.effectiveness import NUM_AXES, ControlAxis


def _quad_B() -> np.ndarray:
    B = np.zeros((NUM_AXES, 4), dtype=float)
    B[ControlAxis.ROLL] = [-1.0, 1.0, 1.0, -1.0]
    B[ControlAxis.PITCH] = [1.0, -1.0, 1.0, -1.0]
    B[ControlAxis.YAW] = [1.0, 1.0, -1.0, -1.0]
    B[ControlAxis.THRUST_Z] = [1.0, 1.0, 1.0, 1.0]
    return B


def _allocate(c: np.ndarray, prio=DEFAULT_AXIS_PRIO_INCREASING) -> np.ndarray:
    alloc = ControlAllocationMultirotor.from_config(
        AllocationConfig(effectiveness=_quad_B(), actuator_min=0.0, actuator_max=1.0, axis_prio_increasing=prio)
    )
    alloc.set_control_setpoint(c)
    alloc.allocate()
    return alloc.get_allocated_control()


def _rel_err(achieved: np.ndarray, c: np.ndarray, axis: ControlAxis) -> float:
    return abs(float(achieved[axis]) - float(c[axis])) / abs(float(c[axis]))


class TestAxisPriority(unittest.TestCase):
    def test_default_order_protects_thrust_over_roll(self):
        c = np.zeros((NUM_AXES,), dtype=float)
        c[ControlAxis.ROLL] = 1.0
        c[ControlAxis.THRUST_Z] = 0.5

        achieved = _allocate(c)
        self.assertAlmostEqual(float(achieved[ControlAxis.THRUST_Z]), 0.5, places=9)
        self.assertAlmostEqual(float(achieved[ControlAxis.ROLL]), 0.5, places=9)

    def test_reversed_order_protects_roll_over_thrust(self):
        c = np.zeros((NUM_AXES,), dtype=float)
        c[ControlAxis.ROLL] = 1.0
        c[ControlAxis.THRUST_Z] = 0.5

        prio = (
            ControlAxis.THRUST_Z,
            ControlAxis.THRUST_X,
            ControlAxis.THRUST_Y,
            ControlAxis.YAW,
            ControlAxis.PITCH,
            ControlAxis.ROLL,
        )
        achieved = _allocate(c, prio)
        self.assertAlmostEqual(float(achieved[ControlAxis.ROLL]), 1.0, places=9)
        # Thrust is raised to make room for the roll command
        self.assertAlmostEqual(float(achieved[ControlAxis.THRUST_Z]), 1.0, places=9)

    def test_last_axis_is_closest_to_setpoint_at_any_magnitude(self):
        base = np.zeros((NUM_AXES,), dtype=float)
        base[ControlAxis.ROLL] = 1.0
        base[ControlAxis.YAW] = 0.5
        base[ControlAxis.THRUST_Z] = 3.5

        for scale in (1.0, 2.0):
            c = scale * base
            achieved = _allocate(c)
            e_thrust = _rel_err(achieved, c, ControlAxis.THRUST_Z)
            e_roll = _rel_err(achieved, c, ControlAxis.ROLL)
            e_yaw = _rel_err(achieved, c, ControlAxis.YAW)
            self.assertLess(e_thrust, e_roll, msg=f"scale={scale}")
            self.assertLess(e_thrust, e_yaw, msg=f"scale={scale}")
            self.assertLessEqual(e_roll, e_yaw + 1e-9, msg=f"scale={scale}")

    def test_same_input_same_output(self):
        c = np.array([0.8, -0.6, 0.4, 0.0, 0.0, 3.0], dtype=float)
        self.assertTrue(np.array_equal(_allocate(c), _allocate(c)))

    def test_priority_must_be_permutation(self):
        alloc = ControlAllocationMultirotor(num_actuators=4)
        with self.assertRaises(ValueError):
            alloc.set_axis_priority_increasing([0, 1, 2, 3, 4])
        with self.assertRaises(ValueError):
            alloc.set_axis_priority_increasing([0, 1, 2, 3, 4, 4])
        alloc.set_axis_priority_increasing([5, 4, 3, 2, 1, 0])
        self.assertEqual(alloc.get_axis_priority_increasing()[0], ControlAxis.THRUST_Z)

    def test_config_rejects_inverted_bounds(self):
        with self.assertRaises(ValueError):
            ControlAllocationMultirotor.from_config(AllocationConfig(effectiveness=_quad_B(), actuator_min=1.0, actuator_max=0.0))


if __name__ == "__main__":
    unittest.main()
