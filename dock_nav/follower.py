"""Path follower: executes recipe commands in order.

Each command is dispatched to the component that owns it. The run stops at
the first step that fails or is aborted, and the hazard system is suspended
for the whole run and re-enabled however the run ends.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from .cancellation import AbortToken
from .config import RECIPE_WARNING_PAUSE, TERM_BLUE, TERM_ORANGE, TERM_RESET
from .data_collector import DataCollector
from .docking import DockingController
from .errors import Fault
from .fiducial import FiducialAligner
from .map_nav import MapNavigator
from .motion import MotionExecutor
from .recipe import (
    DelegateCommand,
    DockCommand,
    DriveCommand,
    FiducialAlignCommand,
    MapLoadCommand,
    MapMoveCommand,
    PathCommand,
    TurnCommand,
    parse_recipe,
    recipe_warnings,
)

Delegate = Callable[[str], Awaitable[bool]]


@dataclass
class StepOutcome:
    """Result of one executed command."""

    index: int
    command: PathCommand
    success: bool
    fault: Optional[Fault] = None
    elapsed: float = 0.0


@dataclass
class PathResult:
    """Overall outcome of a run plus the per-step log."""

    success: bool
    steps: List[StepOutcome] = field(default_factory=list)

    @property
    def failed_step(self) -> Optional[StepOutcome]:
        for step in self.steps:
            if not step.success:
                return step
        return None


class PathFollower:
    """Runs a recipe through the motion, docking, marker and map components.

    Attributes:
        delegate: Optional caller callback for ``DELEGATE`` commands.
        warning_pause: Pause after spoken recipe warnings (seconds).
    """

    def __init__(
        self,
        motion: MotionExecutor,
        docker: DockingController,
        aligner: FiducialAligner,
        navigator: MapNavigator,
        abort: AbortToken,
        delegate: Optional[Delegate] = None,
        data_collector: Optional[DataCollector] = None,
        warning_pause: float = RECIPE_WARNING_PAUSE,
    ) -> None:
        self.motion = motion
        self.docker = docker
        self.aligner = aligner
        self.navigator = navigator
        self.abort_token = abort
        self.delegate = delegate
        self.data_collector = data_collector
        self.warning_pause = warning_pause

    async def load_commands(self, text: str) -> List[PathCommand]:
        """Parse recipe text, speaking any plausibility warnings.

        Each warning is followed by a pause so an operator can abort the run.
        """
        commands = parse_recipe(text)
        for warning in recipe_warnings(commands):
            logging.warning(f"{TERM_ORANGE}{warning}{TERM_RESET}")
            await self.motion.speak(warning)
            await self.abort_token.sleep(self.warning_pause)
        return commands

    def abort(self) -> None:
        """Request that the current run stop as soon as possible."""
        logging.info("Path follower abort requested")
        self.abort_token.abort()

    async def execute(self, commands: List[PathCommand]) -> PathResult:
        """Execute commands in order, stopping at the first failure.

        Args:
            commands: Parsed recipe commands.

        Returns:
            PathResult; success is True only if every command succeeded and
            the run was not aborted. An empty list succeeds.
        """
        result = PathResult(success=True)
        logging.info(f"{TERM_BLUE}Following path of {len(commands)} commands{TERM_RESET}")

        async with self.motion.hazard_suspended():
            try:
                for index, command in enumerate(commands):
                    if self.abort_token.aborted:
                        logging.info("Path aborted before completion")
                        result.success = False
                        break

                    logging.info(f"{TERM_BLUE}Step {index + 1}/{len(commands)}: {command}{TERM_RESET}")
                    start = time.monotonic()
                    success, fault = await self._run(command)
                    if success and self.abort_token.aborted:
                        success, fault = False, Fault.ABORTED
                    outcome = StepOutcome(index, command, success, fault, time.monotonic() - start)
                    result.steps.append(outcome)
                    self._log_step(outcome)

                    if not success:
                        logging.warning(
                            f"{TERM_ORANGE}Step {index + 1} ({command}) failed"
                            f"{f': {fault.name}' if fault else ''}; stopping path{TERM_RESET}"
                        )
                        result.success = False
                        break
            finally:
                if self.navigator.tracking:
                    await self.navigator.cleanup()

        if self.data_collector is not None:
            self.data_collector.log_result(result.success, len(result.steps))
        logging.info(f"{TERM_BLUE}Path {'completed' if result.success else 'failed'}{TERM_RESET}")
        return result

    async def _run(self, command: PathCommand):
        """Dispatch one command; returns (success, fault)."""
        if isinstance(command, DriveCommand):
            ok = await self.motion.drive(command.meters)
            return ok, None if ok else self.motion.last_fault
        if isinstance(command, TurnCommand):
            ok = await self.motion.turn(command.degrees)
            return ok, None if ok else self.motion.last_fault
        if isinstance(command, FiducialAlignCommand):
            ok = await self.aligner.align(command.dictionary, command.size, command.marker_id, command.goal_pose)
            return ok, None if ok else self.aligner.last_fault
        if isinstance(command, DockCommand):
            ok = await self.docker.dock()
            return ok, None if ok else self.docker.last_fault
        if isinstance(command, MapLoadCommand):
            ok = await self.navigator.start_tracking(command.map_name)
            return ok, None if ok else self.navigator.last_fault
        if isinstance(command, MapMoveCommand):
            ok = await self.navigator.move_to(command.x, command.y, command.yaw_degrees, command.tolerance)
            return ok, None if ok else self.navigator.last_fault
        if isinstance(command, DelegateCommand):
            return await self._run_delegate(command.argument)
        logging.error(f"Unsupported command {command!r}")
        return False, Fault.PHASE_FAILURE

    async def _run_delegate(self, argument: str):
        if self.delegate is None:
            logging.warning(f"No delegate registered for DELEGATE:{argument}")
            return False, Fault.PHASE_FAILURE
        try:
            ok = bool(await self.delegate(argument))
        except Exception:
            logging.exception(f"Delegate raised for argument {argument!r}")
            return False, Fault.PHASE_FAILURE
        return ok, None if ok else Fault.PHASE_FAILURE

    def _log_step(self, outcome: StepOutcome) -> None:
        if self.data_collector is None:
            return
        self.data_collector.log_step(
            outcome.index, str(outcome.command), outcome.success, outcome.fault, outcome.elapsed
        )
