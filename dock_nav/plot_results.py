#!/usr/bin/env python3
"""
Standalone script to preview recipes and visualize recorded navigation runs.

The ``recipe`` command dead-reckons a recipe's DRIVE and TURN commands from
the origin and plots the planned path, marking where marker alignments,
docking, map and delegate commands occur. The ``run`` command loads the CSV
files written by a session and plots per-step outcomes and the heading trace.
"""

import argparse
import csv
import logging
import math
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.figure import Figure

from .config import DATA_DIR, PLOT_BLUE, PLOT_ORANGE, PLOT_TAUPE, TERM_BLUE, TERM_RESET
from .geometry import MoveSequence, Pose2D, apply_move_sequence
from .recipe import DriveCommand, PathCommand, TurnCommand, load_recipe
from .store import DataStore

MARKER_STYLES = {
    "ARTAG": ("s", PLOT_BLUE),
    "DOCK": ("*", PLOT_ORANGE),
    "DELEGATE": ("D", PLOT_TAUPE),
    "MAP": ("^", PLOT_TAUPE),
    "MAPGOTO": ("v", PLOT_TAUPE),
}
"""Marker shape and color for each non-motion recipe command."""


# ============================================================================
# Data Loading
# ============================================================================


def load_csv_to_dict(csv_path: Path, text_columns: Sequence[str] = ()) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Numeric columns are converted to floats, with non-numeric or empty values
    becoming NaN. Columns named in ``text_columns`` are kept as strings.

    Args:
        csv_path: Path to CSV file.
        text_columns: Columns to keep as strings.

    Returns:
        Dictionary mapping column names to numpy arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.
    """
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        data: Dict[str, list] = {name: [] for name in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                if key in text_columns:
                    data[key].append(value or "")
                    continue
                try:
                    data[key].append(float(value))
                except (ValueError, TypeError):
                    data[key].append(np.nan)

    return {key: np.array(values) for key, values in data.items()}


def dead_reckon(commands: List[PathCommand], start: Optional[Pose2D] = None) -> Tuple[List[Pose2D], List[Tuple[str, Pose2D]]]:
    """Integrate DRIVE and TURN commands into a planned path.

    Args:
        commands: Parsed recipe commands.
        start: Starting pose (default: origin facing +x).

    Returns:
        Tuple of (poses after each motion command including the start,
        (command name, pose) for every other command).
    """
    pose = start or Pose2D(0.0, 0.0, 0.0)
    poses = [pose]
    events: List[Tuple[str, Pose2D]] = []
    for command in commands:
        if isinstance(command, DriveCommand):
            pose = apply_move_sequence(pose, MoveSequence(0.0, command.meters, 0.0))
            poses.append(pose)
        elif isinstance(command, TurnCommand):
            pose = apply_move_sequence(pose, MoveSequence(math.radians(command.degrees), 0.0, 0.0))
            poses.append(pose)
        else:
            events.append((command.to_recipe().split(":")[0], pose))
    return poses, events


# ============================================================================
# Plot Styling
# ============================================================================


def style_axis(ax: Axes, title: str = "", xlabel: str = "", ylabel: str = "", grid: bool = True) -> None:
    """Apply consistent styling to a matplotlib axis."""
    if title:
        ax.set_title(title, fontweight="bold")
    if xlabel:
        ax.set_xlabel(xlabel)
    if ylabel:
        ax.set_ylabel(ylabel)
    if grid:
        ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5)


def save_figure(fig: Figure, filepath: Path, dpi: int = 300) -> None:
    fig.savefig(filepath, dpi=dpi, bbox_inches="tight")
    logging.info(f"{TERM_BLUE}✓ Saved figure to {filepath}{TERM_RESET}")


# ============================================================================
# Plots
# ============================================================================


def plot_recipe(name: str, commands: List[PathCommand]) -> Figure:
    """Plot the dead-reckoned path of a recipe."""
    poses, events = dead_reckon(commands)
    fig, ax = plt.subplots(figsize=(8, 8))

    xs = [p.x for p in poses]
    ys = [p.y for p in poses]
    ax.plot(xs, ys, color=PLOT_BLUE, linewidth=2, label="Planned path")
    ax.plot(xs[0], ys[0], "o", color=PLOT_TAUPE, markersize=8, label="Start")

    # Heading arrow at the end of the path
    end = poses[-1]
    ax.annotate(
        "",
        xy=(end.x + 0.15 * math.cos(end.yaw), end.y + 0.15 * math.sin(end.yaw)),
        xytext=(end.x, end.y),
        arrowprops={"arrowstyle": "->", "color": PLOT_ORANGE, "linewidth": 2},
    )

    labelled = set()
    for kind, pose in events:
        marker, color = MARKER_STYLES.get(kind, ("o", PLOT_TAUPE))
        ax.plot(pose.x, pose.y, marker, color=color, markersize=12, label=None if kind in labelled else kind)
        labelled.add(kind)

    ax.set_aspect("equal", adjustable="datalim")
    style_axis(ax, title=f"Recipe {name}", xlabel="X (m)", ylabel="Y (m)")
    ax.legend(loc="best", framealpha=0.9, edgecolor=PLOT_TAUPE)
    fig.tight_layout()
    return fig


def plot_run(run_dir: Path) -> Figure:
    """Plot per-step outcomes and the heading trace of a recorded run."""
    steps = load_csv_to_dict(run_dir / "steps.csv", text_columns=("command", "fault"))
    motion = load_csv_to_dict(run_dir / "motion.csv", text_columns=("kind", "fault"))

    fig, (ax_steps, ax_yaw) = plt.subplots(2, 1, figsize=(12, 9))

    if len(steps.get("index", [])):
        colors = [PLOT_BLUE if ok == 1 else PLOT_ORANGE for ok in steps["success"]]
        ax_steps.bar(steps["index"], steps["elapsed"], color=colors)
        ax_steps.set_xticks(steps["index"])
        ax_steps.set_xticklabels(steps["command"], rotation=45, ha="right", fontsize=8)
    style_axis(ax_steps, title="Recipe steps (orange = failed)", ylabel="Elapsed (s)")

    if len(motion.get("timestamp", [])):
        t = motion["timestamp"] - motion["timestamp"][0]
        ax_yaw.plot(t, motion["yaw"], color=PLOT_BLUE, marker="o", label="Yaw after motion")
        failed = motion["success"] != 1
        ax_yaw.plot(t[failed], motion["yaw"][failed], "x", color=PLOT_ORANGE, markersize=10, label="Failed motion")
        ax_yaw.legend(loc="best", framealpha=0.9, edgecolor=PLOT_TAUPE)
    style_axis(ax_yaw, title="Heading", xlabel="Time (s)", ylabel="Yaw (deg)")

    fig.suptitle(f"Run {run_dir.name}", fontsize=14, fontweight="bold")
    fig.tight_layout()
    return fig


# ============================================================================
# Run Discovery
# ============================================================================


def find_latest_run(results_dir: Path) -> Path:
    """Find the most recent run directory.

    Raises:
        FileNotFoundError: If no run directories are found.
    """
    if not results_dir.exists():
        raise FileNotFoundError(f"Results directory not found: {results_dir}")

    run_dirs = sorted(d for d in results_dir.iterdir() if d.is_dir() and d.name.startswith("run_"))
    if not run_dirs:
        raise FileNotFoundError(f"No run directories found in {results_dir}")
    return run_dirs[-1]


def list_available_runs(results_dir: Path) -> None:
    if not results_dir.exists():
        logging.error(f"Results directory not found: {results_dir}")
        return

    run_dirs = sorted(d for d in results_dir.iterdir() if d.is_dir() and d.name.startswith("run_"))
    if not run_dirs:
        logging.info(f"No run directories found in {results_dir}")
        return

    logging.info("Available runs:")
    for i, run_dir in enumerate(run_dirs, 1):
        logging.info(f"  {i}. {run_dir.name}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the plotting script."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(
        description="Preview recipes and visualize recorded navigation runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview a recipe's planned path
  python -m dock_nav.plot_results recipe kitchen

  # Plot the most recent run
  python -m dock_nav.plot_results run

  # Plot and save a specific run without showing it
  python -m dock_nav.plot_results run --run run_20261019_101500 --save --no-show

  # List all available runs
  python -m dock_nav.plot_results run --list
        """,
    )
    subparsers = parser.add_subparsers(dest="mode", required=True)

    recipe_parser = subparsers.add_parser("recipe", help="Plot a recipe's dead-reckoned path")
    recipe_parser.add_argument("name", help="Recipe name in the data directory")
    recipe_parser.add_argument("--data-dir", default=DATA_DIR, help=f"Recipe directory (default: {DATA_DIR})")

    run_parser = subparsers.add_parser("run", help="Plot a recorded run")
    run_parser.add_argument(
        "--run",
        default=None,
        help="Name of the run directory to plot. If not specified, plots the most recent run.",
    )
    run_parser.add_argument("--results-dir", default="results", help="Path to the results directory (default: results)")
    run_parser.add_argument("--list", action="store_true", help="List all available runs and exit")

    for sub in (recipe_parser, run_parser):
        sub.add_argument("--save", action="store_true", help="Save the plot as a PNG file")
        sub.add_argument("--no-show", action="store_true", help="Do not display plots interactively (useful with --save)")

    args = parser.parse_args(argv)

    if args.mode == "recipe":
        store = DataStore(args.data_dir)
        try:
            commands = load_recipe(store, args.name)
        except FileNotFoundError as e:
            logging.error(f"Error: {e}")
            logging.info(f"Available recipes: {', '.join(store.list_recipes()) or 'none'}")
            sys.exit(1)
        fig = plot_recipe(args.name, commands)
        output = store.recipe_path(args.name).with_suffix(".png")
    else:
        results_dir = Path(args.results_dir)
        if args.list:
            list_available_runs(results_dir)
            return
        if args.run:
            run_dir = results_dir / args.run
            if not run_dir.exists():
                logging.error(f"Error: Run directory not found: {run_dir}")
                list_available_runs(results_dir)
                sys.exit(1)
        else:
            try:
                run_dir = find_latest_run(results_dir)
            except FileNotFoundError as e:
                logging.error(f"Error: {e}")
                sys.exit(1)
            logging.info(f"{TERM_BLUE}Plotting most recent run: {run_dir}{TERM_RESET}")
        try:
            fig = plot_run(run_dir)
        except FileNotFoundError as e:
            logging.error(f"Error: {e}")
            logging.info(f"Make sure {run_dir} contains steps.csv and motion.csv")
            sys.exit(1)
        output = run_dir / "run_summary.png"

    if args.save:
        save_figure(fig, output)
    if not args.no_show:
        plt.show()
    plt.close(fig)


if __name__ == "__main__":
    main()
