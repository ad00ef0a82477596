"""Console and log output for calibration runs, built on Rich.

Log records go through a RichHandler on the root logger. Calibration
results that operators read line by line (camera matrices, distortion
vectors, poses) are written as ``<label> <name>: [ a, b, c ]`` so they can
be grepped out of a log file. Summaries of loaded rigs, collect passes and
solve results are rendered on the shared console.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.theme import Theme

if TYPE_CHECKING:
    from ical_calib.model.camera import Camera
    from ical_calib.model.target import Target
    from ical_calib.session.orchestrator import RunResult
    from ical_calib.session.session import CollectReport


THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red bold",
    "success": "green",
    "debug": "dim",
    "camera": "bold magenta",
    "target": "bold blue",
})

console = Console(theme=THEME)

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Solver progress is printed by scipy itself; keep its warnings only
NOISY_LOGGERS = ("scipy",)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> None:
    """Route calibration logs to the console and optionally to a file.

    Args:
        level: Logging level for the ical_calib loggers.
        log_file: Optional path that receives the same records, e.g. to keep
            the camera_matrix/distortion lines of a run.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=level <= logging.DEBUG,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    rich_handler.setLevel(level)
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def format_vector(values: Iterable[float], precision: int = 6) -> str:
    """Format a numeric sequence as ``[ a, b, c ]``."""
    return "[ " + ", ".join(f"{float(v):.{precision}f}" for v in values) + " ]"


def log_vector(
    logger: logging.Logger,
    label: str,
    name: str,
    values: Iterable[float],
    precision: int = 6,
) -> None:
    """Log one labelled parameter vector, e.g. ``distortion left: [ ... ]``."""
    logger.info(f"{label} {name}: {format_vector(values, precision)}")


def print_banner() -> None:
    from ical_calib import __version__

    console.print()
    console.print("[bold cyan]ICAL Calibration Kit[/bold cyan]", justify="center")
    console.print(f"[dim]Version {__version__}[/dim]", justify="center")
    console.print()


def print_success(message: str) -> None:
    console.print(f"[success][OK][/success] {message}")


def print_error(message: str) -> None:
    console.print(f"[error][ERROR][/error] {message}")


def print_warning(message: str) -> None:
    console.print(f"[warning][WARN][/warning] {message}")


def print_info(message: str) -> None:
    console.print(f"[info][INFO][/info] {message}")


def describe_camera(camera: "Camera") -> str:
    """One-line description of a camera's role and configured intrinsics."""
    params = camera.camera_parameters
    kind = "moving" if camera.is_moving else "static"
    line = (
        f"{camera.camera_name}: {kind}, {params.width}x{params.height}, "
        f"fx={params.focal_length_x:.2f} fy={params.focal_length_y:.2f}"
    )
    if camera.left_stereo_camera is not None:
        line += f", right of {camera.left_stereo_camera.camera_name}"
    if camera.fixed_intrinsics:
        line += ", fixed intrinsics"
    return line


def describe_target(target: "Target") -> str:
    """One-line description of a target's role and geometry."""
    kind = "moving" if target.is_moving else "static"
    return (
        f"{target.target_name}: {kind}, {target.num_points} points, "
        f"circle diameter {target.circle_diameter:g}"
    )


def print_rig_summary(cameras: Sequence["Camera"], targets: Sequence["Target"]) -> None:
    """Print the loaded cameras and targets, one per line."""
    console.print()
    console.print("[bold]Cameras:[/bold]")
    for camera in cameras:
        console.print(f"  {describe_camera(camera)}", style="camera", highlight=False)
    console.print("[bold]Targets:[/bold]")
    for target in targets:
        console.print(f"  {describe_target(target)}", style="target", highlight=False)
    console.print()


def print_collect_report(report: "CollectReport") -> None:
    """Print the per-camera outcome of one collect pass.

    Rejected cameras are printed as warnings with their diagnostic.
    """
    for camera_result in report.cameras:
        if camera_result.accepted:
            print_info(
                f"Scene {report.scene_id}: {camera_result.camera_name} added "
                f"{camera_result.found} observation(s)"
            )
        else:
            print_warning(
                f"Scene {report.scene_id}: "
                f"{camera_result.error or camera_result.camera_name + ' rejected'}"
            )
    if report.cancelled:
        print_warning(f"Scene {report.scene_id}: collection cancelled")


def build_run_table(result: "RunResult") -> Table:
    """Tabulate per-camera results of a solve."""
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Camera")
    table.add_column("fx", justify="right")
    table.add_column("fy", justify="right")
    table.add_column("cx", justify="right")
    table.add_column("cy", justify="right")
    table.add_column("Observations", justify="right")
    table.add_column("RMSE (px)", justify="right")

    for camera_result in result.cameras:
        K = camera_result.camera_matrix
        rmse = camera_result.reprojection_rmse
        table.add_row(
            camera_result.camera_name,
            f"{K[0][0]:.3f}",
            f"{K[1][1]:.3f}",
            f"{K[0][2]:.3f}",
            f"{K[1][2]:.3f}",
            str(camera_result.num_observations),
            "-" if rmse is None else f"{rmse:.4f}",
        )
    return table


def print_run_summary(result: "RunResult") -> None:
    """Print costs and the per-camera table of a solve."""
    console.print()
    console.print(build_run_table(result))
    console.print(f"  Observations: {result.total_observations}")
    console.print(f"  Initial cost per observation: {result.initial_cost_per_observation:.6g}")
    console.print(f"  Final cost per observation: {result.final_cost_per_observation:.6g}")
    console.print(f"  Allowable cost per observation: {result.allowable_cost_per_observation:.6g}")
