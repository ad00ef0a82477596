"""Command-line interface for the ICAL Calibration Kit.

This module provides the main CLI entrypoint with subcommands for:
- check: Load camera/target descriptions and verify they register
- simulate: Calibrate a simulated rig built from the descriptions
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ical_calib import __version__
from ical_calib.common.logging import (
    setup_logging,
    get_logger,
    print_banner,
    print_success,
    print_error,
    print_info,
    print_collect_report,
    print_rig_summary,
    print_run_summary,
    console,
)
from ical_calib.model.observation import CostModel

logger = get_logger(__name__)


def main() -> int:
    """Main CLI entrypoint."""
    parser = create_parser()
    args = parser.parse_args()
    
    # Setup logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    setup_logging(level=log_level)
    
    # Dispatch to subcommand
    if hasattr(args, "func"):
        try:
            return args.func(args)
        except Exception as e:
            print_error(f"Error: {e}")
            if getattr(args, "verbose", False):
                console.print_exception()
            return 1
    else:
        parser.print_help()
        return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ical-calib",
        description="ICAL Calibration Kit - Calibrate camera intrinsics and target poses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check camera and target descriptions
  ical-calib check --cameras configs/cameras.yaml --targets configs/targets.yaml

  # Calibrate a simulated rig
  ical-calib simulate --cameras configs/cameras.yaml --targets configs/targets.yaml \\
      --scenes 3 --noise-px 0.1 --perturb-pose 0.02 0.01 --out ./output
""",
    )
    
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    
    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )
    
    # Check subcommand
    check_parser = subparsers.add_parser(
        "check",
        help="Load descriptions, register parameter blocks and resolve stereo pairs",
    )
    check_parser.add_argument(
        "--cameras",
        type=Path,
        required=True,
        help="Path to camera description file",
    )
    check_parser.add_argument(
        "--targets",
        type=Path,
        required=True,
        help="Path to target description file",
    )
    check_parser.set_defaults(func=cmd_check)
    
    # Simulate subcommand
    simulate_parser = subparsers.add_parser(
        "simulate",
        help="Calibrate a simulated rig using the descriptions as ground truth",
    )
    simulate_parser.add_argument(
        "--cameras",
        type=Path,
        required=True,
        help="Path to camera description file (ground truth)",
    )
    simulate_parser.add_argument(
        "--targets",
        type=Path,
        required=True,
        help="Path to target description file (ground truth)",
    )
    simulate_parser.add_argument(
        "--scenes",
        type=int,
        default=1,
        help="Number of scenes to collect (default: 1)",
    )
    simulate_parser.add_argument(
        "--noise-px",
        type=float,
        default=0.0,
        help="Detection noise standard deviation in pixels (default: 0)",
    )
    simulate_parser.add_argument(
        "--perturb-pose",
        type=float,
        nargs=2,
        metavar=("R", "T"),
        default=(0.0, 0.0),
        help="Initial target pose error: rotation sigma (rad) and translation sigma",
    )
    simulate_parser.add_argument(
        "--perturb-intrinsics",
        type=float,
        default=0.0,
        help="Relative initial error of fx, fy, cx, cy (default: 0)",
    )
    simulate_parser.add_argument(
        "--cost-model",
        choices=[m.value for m in CostModel],
        default=CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK.value,
        help="Residual cost model",
    )
    simulate_parser.add_argument(
        "--allowable-cost",
        type=float,
        default=1.0,
        help="Allowable final cost per observation (default: 1.0)",
    )
    simulate_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed",
    )
    simulate_parser.add_argument(
        "--out",
        type=Path,
        required=True,
        help="Output directory for cameras_calibrated.yaml and run_report.json",
    )
    simulate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    simulate_parser.set_defaults(func=cmd_simulate)
    
    return parser


def cmd_check(args: argparse.Namespace) -> int:
    """Run check command."""
    print_banner()
    
    from ical_calib.common.errors import ConfigurationError
    from ical_calib.io.cameras import load_cameras
    from ical_calib.io.targets import load_targets
    from ical_calib.optimization.blocks import ParameterBlockRegistry
    
    try:
        cameras = load_cameras(args.cameras.resolve())
        targets = load_targets(args.targets.resolve())
        registry = ParameterBlockRegistry()
        registry.init_blocks(cameras, targets)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        return 1
    
    print_rig_summary(cameras, targets)
    print_success(f"Registered {len(registry)} parameter block(s)")
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    """Run simulate command."""
    print_banner()
    
    cameras_path = args.cameras.resolve()
    targets_path = args.targets.resolve()
    output_dir = args.out.resolve()
    
    print_info(f"Cameras: {cameras_path}")
    print_info(f"Targets: {targets_path}")
    print_info(f"Output: {output_dir}")
    
    if args.scenes < 1:
        print_error("--scenes must be at least 1")
        return 1
    
    if args.dry_run:
        print_info("[DRY-RUN] Would perform the following:")
        print_info(f"  1. Load cameras from {cameras_path} and targets from {targets_path}")
        print_info("  2. Perturb the initial guess and attach synthetic observers")
        print_info(f"  3. Start, collect {args.scenes} scene(s), run")
        print_info(f"  4. Save cameras to {output_dir / 'cameras_calibrated.yaml'}")
        print_info(f"  5. Export report to {output_dir / 'run_report.json'}")
        return 0
    
    from ical_calib.common.errors import ConvergenceError
    from ical_calib.io.cameras import load_cameras
    from ical_calib.io.config import SessionConfig
    from ical_calib.io.export import export_run_report_json
    from ical_calib.io.targets import load_targets
    from ical_calib.session.session import CalibrationSession
    from ical_calib.sim import SimulationConfig, build_simulated_rig
    
    cameras = load_cameras(cameras_path)
    targets = load_targets(targets_path)
    
    rotation_sigma, translation_sigma = args.perturb_pose
    rig = build_simulated_rig(cameras, targets, SimulationConfig(
        num_scenes=args.scenes,
        noise_px=args.noise_px,
        perturb_rotation=rotation_sigma,
        perturb_translation=translation_sigma,
        perturb_intrinsics=args.perturb_intrinsics,
        seed=args.seed,
    ))
    
    config = SessionConfig(
        residual_cost_model=CostModel.parse(args.cost_model),
        allowable_cost_per_observation=args.allowable_cost,
    )
    session = CalibrationSession(cameras, targets, config)
    session.start()
    
    collect_reports = []
    for scene_id in range(args.scenes):
        rig.set_scene(scene_id)
        report = session.collect_observations(scene_id)
        collect_reports.append(report.to_dict())
        print_collect_report(report)
    
    if session.total_observations == 0:
        print_error("No observations collected")
        return 1
    
    try:
        result = session.run(args.allowable_cost)
    except ConvergenceError as e:
        print_error(f"Calibration failed: {e}")
        return 1
    
    output_dir.mkdir(parents=True, exist_ok=True)
    cameras_out = session.save(output_dir / "cameras_calibrated.yaml")
    print_success(f"Exported: {cameras_out}")
    
    pose_errors = rig.target_pose_errors(session.registry)
    report_path = export_run_report_json(
        result,
        output_dir / "run_report.json",
        additional_info={
            "collect": collect_reports,
            "intrinsics_error": {
                name: error.tolist() for name, error in rig.intrinsics_errors().items()
            },
            "target_pose_error": [
                {"target_name": name, "scene_id": scene, "rotation_rad": rot, "translation": trans}
                for (name, scene), (rot, trans) in pose_errors.items()
            ],
        },
    )
    print_success(f"Exported: {report_path}")
    
    print_run_summary(result)
    
    if not result.success:
        print_error(result.message)
        return 1
    
    print_success("Calibration accepted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
