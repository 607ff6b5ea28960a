import argparse

import numpy as np

from ctrlalloc.control.allocation import (
    DEFAULT_AXIS_PRIO_INCREASING,
    AllocationConfig,
    ControlAllocationMultirotor,
    ControlAllocationPseudoInverse,
)
from ctrlalloc.control.effectiveness import (
    ControlAxis,
    build_effectiveness_matrix,
    disable_actuators,
    multirotor_geometry,
)


def _fmt(v: np.ndarray) -> str:
    return "[" + ", ".join(f"{float(x):+.4f}" for x in np.asarray(v).reshape(-1)) + "]"


def main() -> int:
    parser = argparse.ArgumentParser(description="Single allocation: control setpoint -> desaturated actuator setpoint.")
    parser.add_argument("--rotors", type=int, default=4, help="Number of rotors in a planar X layout. Default: 4")
    parser.add_argument("--arm-length", type=float, default=0.2)
    parser.add_argument("--CT", type=float, default=1.0, help="Thrust per unit actuator command. Default: 1.0")
    parser.add_argument("--CQ", type=float, default=0.05, help="Reaction torque coefficient. Default: 0.05")
    parser.add_argument("--u-min", type=float, default=0.0)
    parser.add_argument("--u-max", type=float, default=1.0)
    parser.add_argument("--disable", type=int, nargs="*", default=[], help="Actuator indices to mark as lost.")

    parser.add_argument("--roll", type=float, default=0.0, help="Roll torque setpoint.")
    parser.add_argument("--pitch", type=float, default=0.0, help="Pitch torque setpoint.")
    parser.add_argument("--yaw", type=float, default=0.0, help="Yaw torque setpoint.")
    parser.add_argument("--thrust", type=float, default=2.0, help="Vertical thrust setpoint (+z). Default: 2.0")

    parser.add_argument(
        "--prio",
        type=str,
        nargs=6,
        default=[a.name for a in DEFAULT_AXIS_PRIO_INCREASING],
        metavar="AXIS",
        help="Axis priority, lowest first. Default: " + " ".join(a.name for a in DEFAULT_AXIS_PRIO_INCREASING),
    )
    parser.add_argument("--no-desat", action="store_true", help="Use plain pseudo-inverse + clip.")
    args = parser.parse_args()

    r, n, s = multirotor_geometry(num_rotors=int(args.rotors), arm_length=float(args.arm_length))
    B = build_effectiveness_matrix(r_body=r, n_body=n, C_T=float(args.CT), C_Q=float(args.CQ), spin_dir=s)
    if args.disable:
        B = disable_actuators(B, args.disable)

    try:
        prio = tuple(ControlAxis[name.upper()] for name in args.prio)
    except KeyError as e:
        parser.error(f"unknown axis {e.args[0]!r}")

    cls = ControlAllocationPseudoInverse if args.no_desat else ControlAllocationMultirotor
    alloc = cls.from_config(
        AllocationConfig(
            effectiveness=B,
            actuator_min=float(args.u_min),
            actuator_max=float(args.u_max),
            axis_prio_increasing=prio,
        )
    )

    c = np.zeros((len(ControlAxis),), dtype=float)
    c[ControlAxis.ROLL] = float(args.roll)
    c[ControlAxis.PITCH] = float(args.pitch)
    c[ControlAxis.YAW] = float(args.yaw)
    c[ControlAxis.THRUST_Z] = float(args.thrust)
    alloc.set_control_setpoint(c)
    alloc.allocate()
    res = alloc.result()

    print(f"[info] mode={res.mode} priority(low->high)={' '.join(a.name for a in alloc.get_axis_priority_increasing())}")
    print(f"[info] control_sp        ={_fmt(res.control_sp)}")
    print(f"[info] actuator_raw      ={_fmt(res.actuator_raw)}")
    print(f"[info] actuator_desat    ={_fmt(res.actuator_desaturated)}")
    print(f"[info] actuator_sp       ={_fmt(res.actuator_sp)}")
    print(f"[info] control_allocated ={_fmt(res.control_allocated)}")
    if res.saturated:
        print(f"[warn] saturated: residual={_fmt(res.residual)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
