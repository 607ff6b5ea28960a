import unittest

import numpy as np

from ctrlalloc.control.effectiveness import ControlAxis, build_effectiveness_matrix, multirotor_geometry
from ctrlalloc.control.geninv import geninv, matrix_rank


def _quad_B() -> np.ndarray:
    B = np.zeros((6, 4), dtype=float)
    B[ControlAxis.ROLL] = [-1.0, 1.0, 1.0, -1.0]
    B[ControlAxis.PITCH] = [1.0, -1.0, 1.0, -1.0]
    B[ControlAxis.YAW] = [1.0, 1.0, -1.0, -1.0]
    B[ControlAxis.THRUST_Z] = [1.0, 1.0, 1.0, 1.0]
    return B


class TestGeninv(unittest.TestCase):
    def test_penrose_identity_with_zero_rows(self):
        B = _quad_B()
        A = geninv(B)
        self.assertEqual(A.shape, (4, 6))
        self.assertTrue(np.allclose(B @ A @ B, B, atol=1e-12))
        self.assertTrue(np.allclose(A @ B @ A, A, atol=1e-12))
        # Orthogonal rows of norm^2 = 4 -> A = B^T / 4
        self.assertTrue(np.allclose(A, B.T / 4.0, atol=1e-12))

    def test_right_inverse_full_row_rank(self):
        B = _quad_B()[[ControlAxis.ROLL, ControlAxis.PITCH, ControlAxis.YAW, ControlAxis.THRUST_Z], :]
        A = geninv(B)
        self.assertTrue(np.allclose(B @ A, np.eye(4), atol=1e-12))

        # Reconstruct control from a reachable actuator vector
        u = np.array([0.2, 0.7, 0.4, 0.9], dtype=float)
        c = B @ u
        self.assertTrue(np.allclose(B @ (A @ c), c, atol=1e-12))

    def test_minimum_norm_for_redundant_layout(self):
        r, n, s = multirotor_geometry(num_rotors=6, arm_length=0.25)
        B = build_effectiveness_matrix(r_body=r, n_body=n, C_T=1.0, C_Q=0.05, spin_dir=s)
        self.assertEqual(matrix_rank(B), 4)
        A = geninv(B)

        c = np.array([0.1, -0.05, 0.02, 0.0, 0.0, 3.0], dtype=float)
        u = A @ c
        self.assertTrue(np.allclose(B @ u, c, atol=1e-10))

        # Any null-space perturbation reaches the same control with a larger norm
        _, sv, Vt = np.linalg.svd(B)
        null = Vt[int(np.count_nonzero(sv > 1e-9)) :]
        self.assertEqual(null.shape[0], 2)
        for z in null:
            u2 = u + 0.3 * z
            self.assertTrue(np.allclose(B @ u2, c, atol=1e-10))
            self.assertGreater(float(np.linalg.norm(u2)), float(np.linalg.norm(u)))

    def test_least_squares_for_overdetermined(self):
        rng = np.random.default_rng(3)
        M = rng.normal(size=(6, 2))
        b = rng.normal(size=(6,))
        x = geninv(M) @ b
        x_ref = np.linalg.lstsq(M, b, rcond=None)[0]
        self.assertTrue(np.allclose(x, x_ref, atol=1e-10))

    def test_rank_deficient_matches_numpy(self):
        M = np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [0.0, 0.0, 0.0]], dtype=float)
        self.assertEqual(matrix_rank(M), 1)
        self.assertTrue(np.allclose(geninv(M), np.linalg.pinv(M), atol=1e-12))

    def test_zero_matrix_gives_zero_inverse(self):
        A = geninv(np.zeros((6, 8)))
        self.assertEqual(A.shape, (8, 6))
        self.assertTrue(np.all(A == 0.0))
        self.assertEqual(matrix_rank(np.zeros((6, 8))), 0)

    def test_rejects_non_matrix(self):
        with self.assertRaises(ValueError):
            geninv(np.zeros((3,)))


if __name__ == "__main__":
    unittest.main()
