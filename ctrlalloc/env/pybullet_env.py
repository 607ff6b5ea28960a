from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class RigidBodyState:
    pos: np.ndarray      # (3,) world [m]
    quat: np.ndarray     # (4,) world (x,y,z,w) in PyBullet convention
    vel: np.ndarray      # (3,) world [m/s]
    ang_vel: np.ndarray  # (3,) world [rad/s]

    def rotmat(self) -> np.ndarray:
        """body -> world rotation matrix."""
        x, y, z, w = (float(v) for v in self.quat)
        xx, yy, zz = x * x, y * y, z * z
        xy, xz, yz = x * y, x * z, y * z
        wx, wy, wz = w * x, w * y, w * z
        return np.array(
            [
                [1.0 - 2.0 * (yy + zz), 2.0 * (xy - wz), 2.0 * (xz + wy)],
                [2.0 * (xy + wz), 1.0 - 2.0 * (xx + zz), 2.0 * (yz - wx)],
                [2.0 * (xz - wy), 2.0 * (yz + wx), 1.0 - 2.0 * (xx + yy)],
            ],
            dtype=float,
        )


class PyBulletEnv:
    """
    Minimal PyBullet wrapper for driving a multirotor body with allocated
    rotor thrusts.
    - connect/disconnect
    - ground plane + box body built from primitives (no URDF assets needed)
    - apply rotor thrust / reaction torque in body frame
    - get_state (base link)
    - step
    """

    def __init__(self, *, gui: bool = False, time_step: float = 1.0 / 240.0, gravity: float = 9.81):
        import pybullet as p
        import pybullet_data

        self._p = p
        self._cid = self._p.connect(self._p.GUI if bool(gui) else self._p.DIRECT)
        if self._cid < 0:
            raise RuntimeError("Failed to connect to PyBullet.")

        self._p.setAdditionalSearchPath(pybullet_data.getDataPath())
        self._p.setGravity(0.0, 0.0, -float(gravity))
        self._p.setTimeStep(float(time_step))

        self._body_id: int | None = None
        self._plane_id: int | None = None

    def disconnect(self):
        if self._cid is not None:
            try:
                self._p.disconnect()
            finally:
                self._cid = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.disconnect()
        return False

    @property
    def p(self):
        return self._p

    @property
    def body_id(self) -> int:
        if self._body_id is None:
            raise RuntimeError("Body not created yet. Call create_box_body() first.")
        return int(self._body_id)

    def load_plane(self) -> int:
        if self._plane_id is None:
            self._plane_id = int(self._p.loadURDF("plane.urdf"))
        return int(self._plane_id)

    def create_box_body(
        self,
        *,
        mass: float,
        half_extents: tuple[float, float, float] = (0.12, 0.12, 0.03),
        base_pos=(0.0, 0.0, 0.5),
        base_quat=(0.0, 0.0, 0.0, 1.0),
    ) -> int:
        col = self._p.createCollisionShape(self._p.GEOM_BOX, halfExtents=[float(h) for h in half_extents])
        vis = self._p.createVisualShape(self._p.GEOM_BOX, halfExtents=[float(h) for h in half_extents], rgbaColor=[0.2, 0.4, 0.8, 1.0])
        self._body_id = int(
            self._p.createMultiBody(
                baseMass=float(mass),
                baseCollisionShapeIndex=col,
                baseVisualShapeIndex=vis,
                basePosition=list(base_pos),
                baseOrientation=list(base_quat),
            )
        )
        return int(self._body_id)

    def mass(self) -> float:
        return float(self._p.getDynamicsInfo(self.body_id, -1)[0])

    def get_state(self) -> RigidBodyState:
        pos, quat = self._p.getBasePositionAndOrientation(self.body_id)
        vel, ang = self._p.getBaseVelocity(self.body_id)
        return RigidBodyState(
            pos=np.asarray(pos, dtype=float),
            quat=np.asarray(quat, dtype=float),
            vel=np.asarray(vel, dtype=float),
            ang_vel=np.asarray(ang, dtype=float),
        )

    def apply_rotor_thrusts(
        self,
        *,
        r_body: np.ndarray,
        n_body: np.ndarray,
        thrust: np.ndarray,
        reaction_torque: np.ndarray | None = None,
    ):
        """
        Apply per-rotor thrust thrust[i] * n_i at r_i (body frame) and an
        optional reaction torque reaction_torque[i] * n_i.
        """
        st = self.get_state()
        R = st.rotmat()
        r = np.asarray(r_body, dtype=float).reshape(-1, 3)
        n = np.asarray(n_body, dtype=float).reshape(-1, 3)
        f = np.asarray(thrust, dtype=float).reshape(-1)
        for i in range(int(f.shape[0])):
            world_pos = (st.pos + R @ r[i]).tolist()
            world_force = (R @ (n[i] * float(f[i]))).tolist()
            self._p.applyExternalForce(self.body_id, -1, world_force, world_pos, self._p.WORLD_FRAME)
            if reaction_torque is not None and abs(float(reaction_torque[i])) > 0.0:
                world_torque = (R @ (n[i] * float(reaction_torque[i]))).tolist()
                self._p.applyExternalTorque(self.body_id, -1, world_torque, self._p.WORLD_FRAME)

    def step(self, n: int = 1):
        for _ in range(int(n)):
            self._p.stepSimulation()
