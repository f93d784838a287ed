"""Navigation within a persisted occupancy map.

The navigator loads a named map, relocalizes in it (turning in small steps
until the tracker reports a pose), and drives to goal cells with a
turn-drive move followed by a fine yaw loop and a lateral nudge loop.
Map poses are in cell units; one cell is ``MAP_CELL_SIZE`` meters.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .cancellation import AbortToken
from .config import (
    MAP_CELL_SIZE,
    MAP_FINE_TURN_MINIMUM,
    MAP_FINE_TURN_TOLERANCE,
    MAP_LOOP_LIMIT,
    MAP_RELOCALIZE_STEP,
    MAP_RELOCALIZE_TURNS,
    MAP_TRACKING_WAIT,
)
from .errors import Fault, RobotCommandError
from .geometry import Pose2D, angle_delta, cell_bearing_and_distance
from .motion import MotionExecutor
from .robot import EventType, RobotInterface
from .telemetry import RobotTelemetry


@dataclass
class MapSettings:
    cell_size: float = MAP_CELL_SIZE
    relocalize_turns: int = MAP_RELOCALIZE_TURNS
    relocalize_step: float = MAP_RELOCALIZE_STEP
    map_load_wait: float = 1.0
    tracking_wait: float = MAP_TRACKING_WAIT
    pose_wait: float = 1.0
    fine_turn_tolerance: float = MAP_FINE_TURN_TOLERANCE
    fine_turn_minimum: float = MAP_FINE_TURN_MINIMUM
    loop_limit: int = MAP_LOOP_LIMIT
    head_pitch: float = 0.0
    head_roll: float = 0.0
    head_yaw: float = 0.0


class MapNavigator:
    """Relocalizes in a stored map and drives to map cells.

    Attributes:
        settings: Cell size, waits and loop bounds.
        tracking: True once a pose in the current map has been acquired.
        last_fault: Reason for the last failure.
    """

    def __init__(
        self,
        robot: RobotInterface,
        telemetry: RobotTelemetry,
        motion: MotionExecutor,
        abort: AbortToken,
        settings: Optional[MapSettings] = None,
    ) -> None:
        self.robot = robot
        self.telemetry = telemetry
        self.motion = motion
        self.abort = abort
        self.settings = settings or MapSettings()
        self.tracking = False
        self.last_fault: Optional[Fault] = None

    async def start_tracking(self, map_name: str) -> bool:
        """Load ``map_name`` and relocalize within it.

        Returns:
            True once the tracker reports a pose, False if the sensor never
            streams or relocalization turns are exhausted.
        """
        s = self.settings
        self.last_fault = None
        self.tracking = False
        logging.info(f"Attempting to track within map {map_name}")
        try:
            await self.robot.set_current_map(map_name)
            if not await self.abort.sleep(s.map_load_wait):
                return self._fault(Fault.ABORTED, "Map load aborted")
            await self.robot.start_tracking()
            await self.motion.move_head(s.head_pitch, s.head_roll, s.head_yaw)
            await self.robot.register_event(EventType.SLAM_STATUS)
            await self.robot.register_event(EventType.SELF_STATE)

            # A freshly selected map only takes effect after tracking restarts
            await self.robot.stop_tracking()
            if not await self.abort.sleep(s.tracking_wait):
                return await self._abandon(Fault.ABORTED, "Map load aborted")
            await self.robot.start_tracking()
            if not await self.abort.sleep(s.tracking_wait):
                return await self._abandon(Fault.ABORTED, "Map load aborted")
            await self.robot.request_map()

            status = self.telemetry.slam.latest
            if status is None or not status.streaming:
                return await self._abandon(Fault.SERVICE_UNAVAILABLE, "Failed to start tracking")

            for _ in range(s.relocalize_turns):
                if self._relocalized():
                    break
                if not await self.motion.turn(s.relocalize_step):
                    return await self._abandon(self.motion.last_fault or Fault.NO_EFFECT, "Relocalization turn failed")
                await self.robot.request_slam_status()
                await self.abort.sleep(s.pose_wait)
                if self.abort.aborted:
                    return await self._abandon(Fault.ABORTED, "Relocalization aborted")
        except RobotCommandError as e:
            return await self._abandon(Fault.COMMAND_ERROR, f"Map command failed: {e}")

        if not self._relocalized():
            return await self._abandon(Fault.PHASE_FAILURE, "Unable to obtain pose in map")
        self.tracking = True
        logging.info(f"Pose acquired in map {map_name}: {self.telemetry.map_pose.latest}")
        return True

    async def move_to(self, x: float, y: float, yaw_degrees: float, tolerance: float) -> bool:
        """Drive to map cell (x, y) and face ``yaw_degrees``.

        Args:
            x: Goal cell x.
            y: Goal cell y.
            yaw_degrees: Goal heading in the map frame.
            tolerance: Allowed lateral error in cells.

        Returns:
            True when the goal heading and lateral tolerance are reached.
        """
        s = self.settings
        self.last_fault = None
        if not self.tracking:
            return self._fault(Fault.SERVICE_UNAVAILABLE, "Not tracking in a map")

        pose = await self._current_pose()
        if pose is None:
            return self._fault(Fault.TELEMETRY_STALE, "No map pose")

        bearing, distance = cell_bearing_and_distance((pose.x, pose.y), (x, y), s.cell_size)
        logging.info(f"Map cell ({pose.x:.0f}, {pose.y:.0f}), yaw {pose.yaw_degrees:.1f}°: bearing {bearing:.1f}°, {distance:.2f}m to goal")
        if distance > tolerance * s.cell_size:
            if not await self.motion.turn(angle_delta(pose.yaw_degrees, bearing)):
                return self._motion_failed("turn to bearing")
            if not await self.motion.drive(distance):
                return self._motion_failed("drive to goal")

        if not await self._fine_turn(yaw_degrees):
            return False
        return await self._nudge_lateral(x, y, tolerance)

    async def _fine_turn(self, yaw_degrees: float) -> bool:
        s = self.settings
        for _ in range(s.loop_limit):
            pose = await self._current_pose()
            if pose is None:
                return self._fault(Fault.TELEMETRY_STALE, "Lost map pose")
            delta = angle_delta(pose.yaw_degrees, yaw_degrees)
            if abs(delta) <= s.fine_turn_tolerance:
                return True
            # Turns below the minimum are skipped by the motion executor
            step = math.copysign(max(abs(delta), s.fine_turn_minimum), delta)
            if not await self.motion.turn(step):
                return self._motion_failed("fine turn")
        return self._fault(Fault.TOLERANCE_EXCEEDED, f"Could not reach map yaw {yaw_degrees:.1f}°")

    async def _nudge_lateral(self, x: float, y: float, tolerance: float) -> bool:
        s = self.settings
        for _ in range(s.loop_limit):
            pose = await self._current_pose()
            if pose is None:
                return self._fault(Fault.TELEMETRY_STALE, "Lost map pose")
            # Goal offset to the robot's left, in cells
            lateral = -math.sin(pose.yaw) * (x - pose.x) + math.cos(pose.yaw) * (y - pose.y)
            if abs(lateral) <= tolerance:
                logging.info(f"Reached map cell ({pose.x:.0f}, {pose.y:.0f}), yaw {pose.yaw_degrees:.1f}°")
                return True
            if not await self.motion.turn(90.0):
                return self._motion_failed("nudge turn")
            if not await self.motion.drive(lateral * s.cell_size):
                return self._motion_failed("nudge drive")
            if not await self.motion.turn(-90.0):
                return self._motion_failed("nudge turn")
        return self._fault(Fault.TOLERANCE_EXCEEDED, f"Could not reach map cell ({x:.0f}, {y:.0f})")

    async def cleanup(self) -> None:
        """Stop tracking and release map subscriptions."""
        logging.debug("Map navigator cleanup")
        self.tracking = False
        try:
            await self.robot.stop_tracking()
            await self.robot.unregister_event(EventType.SLAM_STATUS)
            await self.robot.unregister_event(EventType.SELF_STATE)
        except RobotCommandError as e:
            logging.warning(f"Map navigator cleanup incomplete: {e}")

    def _relocalized(self) -> bool:
        status = self.telemetry.slam.latest
        return status is not None and status.tracking and self.telemetry.map_pose.latest is not None

    async def _current_pose(self) -> Optional[Pose2D]:
        """Wait for a map pose published after this call."""
        cell = self.telemetry.map_pose
        version = cell.version
        if not await self.abort.wait_for(self.telemetry.wait_condition(cell, version), self.settings.pose_wait):
            return None
        return cell.latest

    async def _abandon(self, fault: Fault, message: str) -> bool:
        self._fault(fault, message)
        await self.cleanup()
        return False

    def _motion_failed(self, what: str) -> bool:
        return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, f"Map navigation {what} failed")

    def _fault(self, fault: Fault, message: str) -> bool:
        self.last_fault = fault
        logging.warning(message)
        return False
