import argparse
import time

import numpy as np

from ctrlalloc.control.actuator_model import ActuatorModel
from ctrlalloc.control.allocation import AllocationConfig, ControlAllocationMultirotor
from ctrlalloc.control.effectiveness import (
    NUM_AXES,
    ControlAxis,
    build_effectiveness_matrix,
    disable_actuators,
    multirotor_geometry,
)
from ctrlalloc.env.pybullet_env import PyBulletEnv
from ctrlalloc.logger.csv_logger import CsvLogger


def _vee(S: np.ndarray) -> np.ndarray:
    return np.array([S[2, 1], S[0, 2], S[1, 0]], dtype=float)


def _rpy_deg(R: np.ndarray) -> tuple[float, float, float]:
    """ZYX euler angles from body->world rotation."""
    roll = float(np.arctan2(R[2, 1], R[2, 2]))
    pitch = float(np.arcsin(np.clip(-R[2, 0], -1.0, 1.0)))
    yaw = float(np.arctan2(R[1, 0], R[0, 0]))
    return float(np.degrees(roll)), float(np.degrees(pitch)), float(np.degrees(yaw))


def _control_setpoint(
    *,
    R: np.ndarray,
    ang_vel_world: np.ndarray,
    z: float,
    vz: float,
    z_des: float,
    mass: float,
    gravity: float,
    kp_att: float,
    kd_att: float,
    kp_z: float,
    kd_z: float,
) -> np.ndarray:
    """
    Level-hold attitude PD + altitude PD, in ControlAxis order.
    """
    e_R = 0.5 * _vee(R - R.T)  # R_des = I
    w_b = R.T @ np.asarray(ang_vel_world, dtype=float)
    tau = -float(kp_att) * e_R - float(kd_att) * w_b

    az = float(kp_z) * (float(z_des) - float(z)) - float(kd_z) * float(vz)
    Fz = float(mass) * (float(gravity) + az) / max(0.25, float(R[2, 2]))

    c = np.zeros((NUM_AXES,), dtype=float)
    c[ControlAxis.ROLL : ControlAxis.YAW + 1] = tau
    c[ControlAxis.THRUST_Z] = max(0.0, Fz)
    return c


def main() -> int:
    parser = argparse.ArgumentParser(description="Hover with sequential-desaturation allocation and an actuator loss.")
    parser.add_argument("--gui", action="store_true", help="Use PyBullet GUI.")
    parser.add_argument("--seconds", type=float, default=6.0, help="Sim duration [s]. Default: 6.0")
    parser.add_argument("--hz", type=float, default=240.0, help="Sim/control frequency [Hz]. Default: 240")
    parser.add_argument("--gravity", type=float, default=9.81)

    parser.add_argument("--mass", type=float, default=1.0, help="Body mass [kg]. Default: 1.0")
    parser.add_argument("--z0", type=float, default=0.5, help="Initial altitude [m].")
    parser.add_argument("--z-des", type=float, default=1.0, help="Desired altitude [m].")

    parser.add_argument("--rotors", type=int, default=6, help="Rotors in planar X layout. Default: 6")
    parser.add_argument("--arm-length", type=float, default=0.2)
    parser.add_argument("--tw-ratio", type=float, default=2.5, help="Total max thrust / weight. Default: 2.5")
    parser.add_argument("--CQ", type=float, default=0.05, help="Reaction torque per unit thrust [m]. Default: 0.05")
    parser.add_argument("--motor-tau", type=float, default=0.03)

    parser.add_argument("--fail-at", type=float, default=3.0, help="Time of actuator loss [s]. Negative disables.")
    parser.add_argument("--fail-index", type=int, default=0)
    parser.add_argument(
        "--no-reconfigure",
        action="store_true",
        help="Keep the nominal effectiveness matrix after the loss (no failure detection).",
    )

    parser.add_argument("--kp-att", type=float, default=0.6)
    parser.add_argument("--kd-att", type=float, default=0.12)
    parser.add_argument("--kp-z", type=float, default=4.0)
    parser.add_argument("--kd-z", type=float, default=3.0)

    parser.add_argument("--log-csv", type=str, default=None, help="Write one CSV row per control cycle.")
    parser.add_argument("--log-flush-every", type=int, default=50)
    parser.add_argument("--log-every", type=int, default=240, help="Print status every N steps (0 disables).")
    args = parser.parse_args()

    hz = float(args.hz)
    dt = 1.0 / hz
    g = float(args.gravity)
    mass = float(args.mass)
    N = int(args.rotors)

    T_max = float(args.tw_ratio) * mass * g / N  # per rotor [N]
    r_body, n_body, spin = multirotor_geometry(num_rotors=N, arm_length=float(args.arm_length))
    B_nominal = build_effectiveness_matrix(r_body=r_body, n_body=n_body, C_T=T_max, C_Q=float(args.CQ) * T_max, spin_dir=spin)

    alloc = ControlAllocationMultirotor.from_config(AllocationConfig(effectiveness=B_nominal, actuator_min=0.0, actuator_max=1.0))
    actuators = ActuatorModel(num_actuators=N, tau=float(args.motor_tau), u_min=0.0, u_max=1.0)
    actuators.reset(np.full((N,), 1.0 / float(args.tw_ratio), dtype=float))

    logger = None
    if args.log_csv:
        logger = CsvLogger.for_allocation(
            args.log_csv,
            N,
            extra_fields=["x", "y", "z", "roll_deg", "pitch_deg", "yaw_deg", "failed"],
            flush_every=int(args.log_flush_every),
        )
        logger.open()
        print(f"[info] CSV logging enabled: {args.log_csv}")

    env = PyBulletEnv(gui=bool(args.gui), time_step=dt, gravity=g)
    failed = False
    try:
        env.load_plane()
        env.create_box_body(mass=mass, base_pos=(0.0, 0.0, float(args.z0)))
        print(f"[info] rotors={N} T_max/rotor={T_max:.3f}N mass={env.mass():.3f}kg")

        n_steps = max(1, int(float(args.seconds) * hz))
        for k in range(n_steps):
            t = k * dt
            if not failed and float(args.fail_at) >= 0.0 and t >= float(args.fail_at):
                failed = True
                actuators.fail(int(args.fail_index))
                if not args.no_reconfigure:
                    alloc.set_effectiveness_matrix(disable_actuators(B_nominal, [int(args.fail_index)]))
                print(f"[warn] t={t:.3f}s actuator {int(args.fail_index)} lost (reconfigure={not args.no_reconfigure})")

            st = env.get_state()
            R = st.rotmat()
            c = _control_setpoint(
                R=R,
                ang_vel_world=st.ang_vel,
                z=float(st.pos[2]),
                vz=float(st.vel[2]),
                z_des=float(args.z_des),
                mass=mass,
                gravity=g,
                kp_att=float(args.kp_att),
                kd_att=float(args.kd_att),
                kp_z=float(args.kp_z),
                kd_z=float(args.kd_z),
            )
            alloc.set_control_setpoint(c)
            alloc.allocate()

            u_act = actuators.step(alloc.get_actuator_setpoint(), dt)
            env.apply_rotor_thrusts(
                r_body=r_body,
                n_body=n_body,
                thrust=T_max * u_act,
                reaction_torque=spin * float(args.CQ) * T_max * u_act,
            )
            env.step(1)
            if bool(args.gui):
                time.sleep(dt)

            if logger is not None or (int(args.log_every) > 0 and k % int(args.log_every) == 0):
                res = alloc.result()
                roll, pitch, yaw = _rpy_deg(R)
                if logger is not None:
                    logger.write_result(
                        res,
                        t=t,
                        x=float(st.pos[0]),
                        y=float(st.pos[1]),
                        z=float(st.pos[2]),
                        roll_deg=roll,
                        pitch_deg=pitch,
                        yaw_deg=yaw,
                        failed=int(failed),
                    )
                if int(args.log_every) > 0 and k % int(args.log_every) == 0:
                    print(
                        f"[step {k:06d}] z={st.pos[2]:.3f} rpy=({roll:+.1f},{pitch:+.1f},{yaw:+.1f}) "
                        f"sat={int(res.saturated)} residual={np.round(res.residual, 4)}"
                    )
    finally:
        env.disconnect()
        if logger is not None:
            logger.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
