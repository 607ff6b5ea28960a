import unittest

import numpy as np

from ctrlalloc.control.actuator_model import ActuatorModel


class TestActuatorModel(unittest.TestCase):
    def test_first_order_lag_converges(self):
        m = ActuatorModel(num_actuators=3, tau=0.05)
        m.reset(np.zeros((3,)))
        cmd = np.array([0.2, 0.5, 0.9])
        u = m.step(cmd, 0.01)
        self.assertTrue(np.all(u > 0.0) and np.all(u < cmd))
        for _ in range(500):
            u = m.step(cmd, 0.01)
        self.assertTrue(np.allclose(u, cmd, atol=1e-6))

    def test_command_is_saturated_per_actuator(self):
        m = ActuatorModel(num_actuators=2, tau=1e-6, u_min=np.array([0.0, 0.1]), u_max=np.array([1.0, 0.8]))
        m.reset(np.array([0.5, 0.5]))
        u = m.step(np.array([2.0, -1.0]), 0.01)
        self.assertTrue(np.allclose(u, [1.0, 0.1], atol=1e-3))

    def test_rate_limit(self):
        m = ActuatorModel(num_actuators=1, tau=1e-6, rate_limit=2.0)
        m.reset(np.zeros((1,)))
        u = m.step(np.ones((1,)), 0.1)
        self.assertAlmostEqual(float(u[0]), 0.2, places=9)

    def test_failed_actuator_outputs_zero(self):
        m = ActuatorModel(num_actuators=4)
        m.reset(np.full((4,), 0.5))
        m.fail(2)
        u = m.step(np.ones((4,)), 0.01)
        self.assertEqual(float(u[2]), 0.0)
        self.assertGreater(float(u[0]), 0.5)
        with self.assertRaises(ValueError):
            m.fail(4)

    def test_non_positive_dt_holds_state(self):
        m = ActuatorModel(num_actuators=2)
        m.reset(np.array([0.3, 0.4]))
        self.assertTrue(np.array_equal(m.step(np.ones((2,)), 0.0), [0.3, 0.4]))

    def test_shape_mismatch(self):
        m = ActuatorModel(num_actuators=2)
        with self.assertRaises(ValueError):
            m.reset(np.zeros((3,)))


if __name__ == "__main__":
    unittest.main()
