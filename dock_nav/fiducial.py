"""Alignment to a printed fiducial marker.

The aligner drives the robot until a marker is observed at a caller-specified
pose: it waits for a burst of consistent detections, plans a move sequence
from the current observation to the goal observation, executes it, and
re-measures, up to a bounded number of corrections.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from .cancellation import AbortToken
from .config import (
    FIDUCIAL_INITIAL_READINGS,
    FIDUCIAL_INITIAL_TIMEOUT,
    FIDUCIAL_LOOK_TIMEOUT,
    FIDUCIAL_MAX_CORRECTIONS,
    FIDUCIAL_SWEEP_FIRST_TURN,
    FIDUCIAL_SWEEP_LOOKS,
    FIDUCIAL_SWEEP_STEP,
    FIDUCIAL_TOLERANCE_X,
    FIDUCIAL_TOLERANCE_Y,
    FIDUCIAL_TOLERANCE_YAW,
)
from .errors import Fault, RobotCommandError
from .geometry import Pose2D, angle_delta, calculate_move_sequence
from .motion import MotionExecutor
from .robot import EventType, RobotInterface
from .telemetry import RobotTelemetry

READING_POLL_INTERVAL = 0.05
"""Interval between checks for new marker detections (seconds)."""


@dataclass
class FiducialSettings:
    tolerance_x: float = FIDUCIAL_TOLERANCE_X
    tolerance_y: float = FIDUCIAL_TOLERANCE_Y
    tolerance_yaw: float = FIDUCIAL_TOLERANCE_YAW
    max_corrections: int = FIDUCIAL_MAX_CORRECTIONS
    initial_timeout: float = FIDUCIAL_INITIAL_TIMEOUT
    initial_readings: int = FIDUCIAL_INITIAL_READINGS
    sweep_first_turn: float = FIDUCIAL_SWEEP_FIRST_TURN
    sweep_step: float = FIDUCIAL_SWEEP_STEP
    sweep_looks: int = FIDUCIAL_SWEEP_LOOKS
    look_timeout: float = FIDUCIAL_LOOK_TIMEOUT


class FiducialAligner:
    """Moves the robot to a goal pose relative to a fiducial marker.

    Attributes:
        settings: Tolerances, sweep and retry bounds.
        last_fault: Reason for the last failure.
    """

    def __init__(
        self,
        robot: RobotInterface,
        telemetry: RobotTelemetry,
        motion: MotionExecutor,
        abort: AbortToken,
        settings: Optional[FiducialSettings] = None,
    ) -> None:
        self.robot = robot
        self.telemetry = telemetry
        self.motion = motion
        self.abort = abort
        self.settings = settings or FiducialSettings()
        self.last_fault: Optional[Fault] = None

    def within_tolerance(self, pose: Pose2D, goal: Pose2D) -> bool:
        s = self.settings
        return (
            abs(pose.x - goal.x) <= s.tolerance_x
            and abs(pose.y - goal.y) <= s.tolerance_y
            and abs(angle_delta(goal.yaw_degrees, pose.yaw_degrees)) <= s.tolerance_yaw
        )

    async def align(self, dictionary: int, marker_size: float, marker_id: int, goal: Pose2D) -> bool:
        """Drive until marker ``marker_id`` is observed at ``goal``.

        Args:
            dictionary: Marker dictionary identifier.
            marker_size: Printed marker edge length (millimetres).
            marker_id: Marker to align with.
            goal: Desired marker observation in the robot frame.

        Returns:
            True once within tolerance, False on failure or abort.
        """
        self.last_fault = None
        logging.info(f"Aligning to marker {marker_id}, goal pose {goal}")
        try:
            await self.motion.move_head(0.0, 0.0, 0.0)
            await self.robot.register_event(EventType.FIDUCIAL, filters={"marker_id": marker_id})
            await self.robot.start_fiducial_detector(dictionary, marker_size)
            try:
                return await self._align(marker_id, goal)
            finally:
                await self._cleanup()
        except RobotCommandError as e:
            return self._fault(Fault.COMMAND_ERROR, f"Marker detector command failed: {e}")

    async def _align(self, marker_id: int, goal: Pose2D) -> bool:
        s = self.settings
        pose = await self._wait_for_readings(marker_id, s.initial_readings, s.initial_timeout)
        if pose is None:
            if self.abort.aborted:
                return self._fault(Fault.ABORTED, "Marker alignment aborted")
            pose = await self._sweep(marker_id)
            if pose is None:
                return False

        corrections = 0
        while not self.within_tolerance(pose, goal):
            if self.abort.aborted:
                return self._fault(Fault.ABORTED, "Marker alignment aborted")
            if corrections >= s.max_corrections:
                await self.motion.speak("I can't seem to line up right. I give up.")
                return self._fault(Fault.TOLERANCE_EXCEEDED, f"Failed to line up with marker {marker_id}")
            corrections += 1

            sequence = calculate_move_sequence(pose, goal)
            logging.info(f"Marker at {pose}, correction {corrections}: {sequence}")
            if not await self.motion.turn(sequence.turn1_degrees):
                return self._motion_failed("turn")
            if not await self.motion.drive(sequence.drive_distance, slow=True):
                return self._motion_failed("drive")
            if not await self.motion.turn(sequence.turn2_degrees):
                return self._motion_failed("turn")

            next_pose = await self._wait_for_readings(marker_id, 1, s.initial_timeout)
            if next_pose is None:
                return self._fault(
                    Fault.ABORTED if self.abort.aborted else Fault.PHASE_FAILURE,
                    f"Lost sight of marker {marker_id}",
                )
            pose = next_pose

        logging.info(f"Aligned with marker {marker_id} at {pose}")
        if corrections:
            await self.motion.speak("Alignment complete.")
        return True

    async def _sweep(self, marker_id: int) -> Optional[Pose2D]:
        s = self.settings
        await self.motion.speak("I can't see the tag. Looking around for it.")
        if not await self.motion.turn(s.sweep_first_turn):
            self._motion_failed("sweep turn")
            return None
        for look in range(s.sweep_looks):
            pose = await self._wait_for_readings(marker_id, 1, s.look_timeout)
            if pose is not None:
                return pose
            if self.abort.aborted:
                self._fault(Fault.ABORTED, "Marker alignment aborted")
                return None
            if look < s.sweep_looks - 1 and not await self.motion.turn(s.sweep_step):
                self._motion_failed("sweep turn")
                return None
        await self.motion.speak("I cannot find the tag.")
        self._fault(Fault.PHASE_FAILURE, f"Never detected marker {marker_id}")
        return None

    async def _wait_for_readings(self, marker_id: int, count: int, timeout: float) -> Optional[Pose2D]:
        """Wait for ``count`` consecutive non-zero detections of the marker.

        Only detections published after the call count. Returns the last pose,
        or None on timeout or abort.
        """
        cell = self.telemetry.fiducial
        seen = cell.version
        consecutive = 0
        deadline = time.monotonic() + timeout
        while not self.abort.aborted and time.monotonic() < deadline:
            snap = cell.snapshot()
            if snap is not None and snap.version > seen:
                seen = snap.version
                if snap.value.marker_id == marker_id and not snap.value.is_zero:
                    consecutive += 1
                    if consecutive >= count:
                        return snap.value.pose
                else:
                    consecutive = 0
            if not await self.abort.sleep(READING_POLL_INTERVAL):
                return None
        logging.debug(f"No detection of marker {marker_id} within {timeout:.1f}s")
        return None

    async def _cleanup(self) -> None:
        logging.debug("Marker aligner cleanup")
        try:
            await self.robot.stop_fiducial_detector()
            await self.robot.unregister_event(EventType.FIDUCIAL)
        except RobotCommandError as e:
            logging.warning(f"Marker aligner cleanup incomplete: {e}")

    def _motion_failed(self, what: str) -> bool:
        return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, f"Marker alignment {what} failed")

    def _fault(self, fault: Fault, message: str) -> bool:
        self.last_fault = fault
        logging.warning(message)
        return False
