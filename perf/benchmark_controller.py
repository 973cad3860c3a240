"""
Simple performance micro-benchmarks for the wrench controller.

Measures WrenchController.update + physics step throughput for different
parallel environment counts.
Usage examples (after `pip install -e .`):
    python -m perf.benchmark_controller --envs 1 8 32 128 --steps 1000
    python perf/benchmark_controller.py --envs 4 16 64 --steps 2000 --cascade position
"""
import argparse
import time
from typing import List, Dict, Any

import torch

from wrench_controller import (
    CascadeMode,
    ControllerSettings,
    RigidBodyModel,
    RigidBodySim,
    WrenchController,
)


def build_controller(num_envs: int, device: torch.device, cascade: CascadeMode, update_rate: float):
    """Create a body + engaged controller with a hover command."""
    body = RigidBodySim(num_envs, device)
    # Random but bounded initial state to avoid trivial zero paths
    body.set_state(
        position=torch.randn(num_envs, 3, device=device) * 0.1 + torch.tensor([0.0, 0.0, 1.0], device=device),
        linear_velocity=torch.randn(num_envs, 3, device=device) * 0.5,
    )
    settings = ControllerSettings(body_name="base_link", cascade=cascade, update_rate=update_rate)
    controller = WrenchController.load(
        RigidBodyModel({"base_link": body}), settings, num_envs=num_envs, device=device
    )
    controller.set_position_command(linear=[0.0, 0.0, 1.0])
    controller.set_velocity_command(linear=[0.5, 0.0, 0.0])
    return controller, body


def benchmark_case(
    num_envs: int,
    device: torch.device,
    steps: int,
    warmup: int,
    dt: float,
    update_rate: float,
    cascade: CascadeMode,
) -> Dict[str, Any]:
    """Benchmark controller.update + body.step for a single environment count."""
    controller, body = build_controller(num_envs, device, cascade, update_rate)

    # Warmup (GPU kernels, cache effects)
    with torch.no_grad():
        for _ in range(warmup):
            controller.update(body.sim_time)
            body.step(dt)
        if device.type == "cuda":
            torch.cuda.synchronize(device)

        start = time.perf_counter()
        for _ in range(steps):
            controller.update(body.sim_time)
            body.step(dt)
        if device.type == "cuda":
            torch.cuda.synchronize(device)
        elapsed = time.perf_counter() - start

    steps_per_sec = steps / elapsed
    env_steps_per_sec = steps * num_envs / elapsed
    ms_per_step = elapsed / steps * 1e3
    us_per_env_step = elapsed / (steps * num_envs) * 1e6

    return {
        "envs": num_envs,
        "steps": steps,
        "elapsed_s": elapsed,
        "steps_per_sec": steps_per_sec,
        "env_steps_per_sec": env_steps_per_sec,
        "ms_per_step": ms_per_step,
        "us_per_env_step": us_per_env_step,
    }


def format_result(res: Dict[str, Any]) -> str:
    """Format a single benchmark row."""
    return (
        f"{res['envs']:>5d} | "
        f"{res['steps_per_sec']:>10.1f} | "
        f"{res['env_steps_per_sec']/1e3:>10.1f}k | "
        f"{res['ms_per_step']:>8.3f} | "
        f"{res['us_per_env_step']:>10.2f}"
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Wrench controller perf benchmarks")
    parser.add_argument(
        "--envs",
        type=int,
        nargs="+",
        default=[1, 8, 32, 128],
        help="List of parallel environment counts to benchmark",
    )
    parser.add_argument("--steps", type=int, default=1000, help="Timed iterations per benchmark case")
    parser.add_argument("--warmup", type=int, default=100, help="Warmup iterations per case")
    parser.add_argument(
        "--device",
        type=str,
        default="cuda" if torch.cuda.is_available() else "cpu",
        choices=["cpu", "cuda"],
        help="Device to run benchmarks on",
    )
    parser.add_argument("--dt", type=float, default=0.001, help="Simulation step (seconds)")
    parser.add_argument("--update-rate", type=float, default=0.0, help="Control rate in Hz (0 = every step)")
    parser.add_argument(
        "--cascade",
        type=str,
        choices=["velocity_attitude", "position"],
        default="velocity_attitude",
        help="Cascade policy to benchmark (default: velocity_attitude)",
    )
    return parser.parse_args()


def main():
    args = parse_args()
    device = torch.device(args.device if args.device == "cpu" or torch.cuda.is_available() else "cpu")
    cascade = CascadeMode.from_name(args.cascade)

    print(f"Running on device: {device} | cascade: {cascade.name.lower()}")
    if device.type == "cuda":
        print(f"CUDA device: {torch.cuda.get_device_name(device)}")

    header = "envs |   steps/s | envSteps/s |  ms/step |  us/env-step"
    print(header)
    print("-" * len(header))

    results: List[Dict[str, Any]] = []
    for envs in args.envs:
        res = benchmark_case(
            num_envs=envs,
            device=device,
            steps=args.steps,
            warmup=args.warmup,
            dt=args.dt,
            update_rate=args.update_rate,
            cascade=cascade,
        )
        results.append(res)
        print(format_result(res))


if __name__ == "__main__":
    main()
