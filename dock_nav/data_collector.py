"""Run data collection and CSV logging for navigation runs.

This module provides CSV data logging for:
- Recipe steps (command, outcome, fault, elapsed time)
- Motion primitives (requested move, telemetry at completion, outcome)
- Docking phases (attempt, state transitions, beacon readings)
- Final run result
"""

import csv
import os
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TextIO

from .config import TERM_BLUE, TERM_RESET
from .errors import Fault

if TYPE_CHECKING:
    from .telemetry import KinematicState


class DataCollector:
    """Manages CSV file creation and logging for a navigation run.

    Attributes:
        run_dir: Directory path for this run's output files.
        steps_csv_file: File handle for the per-step CSV.
        motion_csv_file: File handle for the motion primitive CSV.
        docking_csv_file: File handle for the docking phase CSV.
        result_output_path: Path for the final result text file.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the data collector.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory. Can also be set via RUN_DIR environment variable.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.steps_csv_file: Optional[TextIO] = None
        self.steps_csv_writer: Any = None
        self.motion_csv_file: Optional[TextIO] = None
        self.motion_csv_writer: Any = None
        self.docking_csv_file: Optional[TextIO] = None
        self.docking_csv_writer: Any = None

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # Timestamped directory: results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.steps_output_path: Path = self.run_dir / "steps.csv"
        self.motion_output_path: Path = self.run_dir / "motion.csv"
        self.docking_output_path: Path = self.run_dir / "docking.csv"
        self.result_output_path: Path = self.run_dir / "result.txt"

    def setup(self) -> None:
        """Initialize CSV files with headers.

        Creates and opens all CSV files with appropriate column headers.
        Must be called before writing data.
        """
        self.steps_csv_file = open(self.steps_output_path, "w", newline="")
        self.steps_csv_writer = csv.writer(self.steps_csv_file)
        self.steps_csv_writer.writerow(["timestamp", "index", "command", "success", "fault", "elapsed"])
        self.steps_csv_file.flush()

        self.motion_csv_file = open(self.motion_output_path, "w", newline="")
        self.motion_csv_writer = csv.writer(self.motion_csv_file)
        self.motion_csv_writer.writerow(
            ["timestamp", "kind", "requested", "yaw", "roll", "pitch", "left_distance", "success", "fault"]
        )
        self.motion_csv_file.flush()

        self.docking_csv_file = open(self.docking_output_path, "w", newline="")
        self.docking_csv_writer = csv.writer(self.docking_csv_file)
        self.docking_csv_writer.writerow(["timestamp", "attempt", "state", "detail"])
        self.docking_csv_file.flush()

        print(f"{TERM_BLUE}✓ Initialized data collection to {self.run_dir}/{TERM_RESET}")

    def log_step(
        self, index: int, command: str, success: bool, fault: Optional[Fault], elapsed: float
    ) -> None:
        """Log one recipe step outcome.

        Args:
            index: Zero-based position of the command in the recipe.
            command: Recipe text of the command.
            success: Whether the step succeeded.
            fault: Failure reason, if any.
            elapsed: Step duration (seconds).
        """
        if self.steps_csv_writer is None:
            return
        self.steps_csv_writer.writerow(
            [time.time(), index, command, int(success), fault.value if fault else "", f"{elapsed:.3f}"]
        )
        if self.steps_csv_file:
            self.steps_csv_file.flush()

    def log_motion(
        self,
        kind: str,
        requested: float,
        state: "KinematicState",
        success: bool,
        fault: Optional[Fault],
    ) -> None:
        """Log a completed drive or turn with the telemetry it finished on.

        Args:
            kind: "drive" or "turn".
            requested: Requested distance (meters) or angle (degrees).
            state: Kinematic state at completion.
            success: Whether the primitive was confirmed.
            fault: Failure reason, if any.
        """
        if self.motion_csv_writer is None:
            return
        self.motion_csv_writer.writerow(
            [
                time.time(),
                kind,
                requested,
                state.yaw,
                state.roll,
                state.pitch,
                state.left_distance,
                int(success),
                fault.value if fault else "",
            ]
        )
        if self.motion_csv_file:
            self.motion_csv_file.flush()

    def log_docking(self, attempt: int, state: str, detail: str = "") -> None:
        """Log a docking state transition or reading."""
        if self.docking_csv_writer is None:
            return
        self.docking_csv_writer.writerow([time.time(), attempt, state, detail])
        if self.docking_csv_file:
            self.docking_csv_file.flush()

    def log_result(self, success: bool, steps: int) -> None:
        """Log the overall run result to a text file.

        Args:
            success: Overall run outcome.
            steps: Number of steps executed.
        """
        with open(self.result_output_path, "w") as f:
            f.write(f"{'success' if success else 'failure'}\n{steps}\n")
        print(f"{TERM_BLUE}✓ Saved run result to {self.result_output_path.name}{TERM_RESET}")

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        for handle in (self.steps_csv_file, self.motion_csv_file, self.docking_csv_file):
            if handle:
                handle.close()
        self.steps_csv_writer = None
        self.motion_csv_writer = None
        self.docking_csv_writer = None

        print(f"{TERM_BLUE}✓ Saved run data to {self.run_dir}/{TERM_RESET}")

    def __enter__(self) -> "DataCollector":
        """Context manager entry point.

        Returns:
            Self reference for use in with statement.
        """
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit point - ensures cleanup is called.

        Args:
            exc_type: Exception type if an exception occurred.
            exc_val: Exception value if an exception occurred.
            exc_tb: Exception traceback if an exception occurred.
        """
        self.cleanup()
