"""Charger docking state machine.

One controller covers every docking strategy the robot uses. The differences
between chargers (tolerances, how the beacon offset is corrected, how the
robot turns around, and how a failed mount is recovered) live in a
``DockingConfig`` strategy object; ``DockingConfig.wedge()``,
``DockingConfig.shimmy()`` and ``DockingConfig.compact()`` are the presets.

Per attempt the controller walks:

    SEARCHING -> ALIGNING -> TURNING_AWAY -> BACKING_ON -> VERIFYING -> DOCKED

Any phase failure ends the attempt; the controller retries whole attempts up
to ``max_retries`` times and then reports FAILED.

Beacon poses are read in the robot frame (x forward, y left, yaw 0 when the
dock faces the robot squarely), after applying the camera's lateral offset.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .cancellation import AbortToken
from .config import (
    DOCK_ALIGN_MAX_RETRIES,
    DOCK_ALIGNED_X,
    DOCK_ALIGNED_YAW,
    DOCK_BEACON_DEBOUNCE_MS,
    DOCK_BEACON_WAIT,
    DOCK_CENTER_OFFSET,
    DOCK_CHARGE_POLL_INTERVAL,
    DOCK_CHARGE_WAIT,
    DOCK_DETECTOR_RESTART_WAIT,
    DOCK_DETECTOR_RESTARTS,
    DOCK_DETECTOR_START_WAIT,
    DOCK_DISTANCE_TOLERANCE,
    DOCK_IDEAL_DISTANCE,
    DOCK_INITIAL_ROTATION,
    DOCK_LOOK_WAIT,
    DOCK_MAX_RETRIES,
    DOCK_MIN_CORRECTIVE_TURN,
    DOCK_OVERSHOOT,
    DOCK_SWEEP_STEP,
    DOCK_WALL_DISTANCE,
    DOCK_WEDGE_PITCH,
    DOCK_WEDGE_ROLL,
    TERM_BLUE,
    TERM_RESET,
)
from .data_collector import DataCollector
from .errors import Fault, RobotCommandError
from .geometry import Pose2D, angle_delta, calculate_move_sequence, normalize_turn
from .motion import MotionExecutor
from .robot import EventType, RobotInterface
from .store import DockingOffsets
from .telemetry import RobotTelemetry


class AlignStrategy(Enum):
    """How the robot lines up in front of the dock."""

    OFFSET = "offset"
    """Face the beacon, then step sideways by the computed lateral offset."""

    MOVE_SEQUENCE = "move_sequence"
    """Plan a turn-drive-turn to a goal pose in front of the dock."""


class Recovery(Enum):
    """What happens after backing on when charging is not confirmed at once."""

    TURN_AWAY_RETRY = "turn_away_retry"
    """Nudge, wait for charging, otherwise drive off and retry the attempt."""

    SHIMMY = "shimmy"
    """Wiggle toward the expected docked heading while pushing back onto the rail."""


class DockingState(Enum):
    SEARCHING = "searching"
    ALIGNING = "aligning"
    TURNING_AWAY = "turning_away"
    BACKING_ON = "backing_on"
    VERIFYING = "verifying"
    DOCKED = "docked"
    FAILED = "failed"


@dataclass(frozen=True)
class DockingConfig:
    """Strategy and parameters for one kind of charger.

    Distances are meters, angles degrees, waits seconds.
    """

    name: str = "wedge"
    align_strategy: AlignStrategy = AlignStrategy.OFFSET
    recovery: Recovery = Recovery.TURN_AWAY_RETRY

    max_retries: int = DOCK_MAX_RETRIES
    align_max_retries: int = DOCK_ALIGN_MAX_RETRIES
    lateral_tolerance: float = DOCK_ALIGNED_X
    yaw_tolerance: float = DOCK_ALIGNED_YAW
    forward_tolerance: Tuple[float, float] = (-DOCK_DISTANCE_TOLERANCE, DOCK_DISTANCE_TOLERANCE)
    center_offset: float = DOCK_CENTER_OFFSET
    min_corrective_turn: float = DOCK_MIN_CORRECTIVE_TURN
    ideal_distance: float = DOCK_IDEAL_DISTANCE

    initial_rotation: float = DOCK_INITIAL_ROTATION
    sweep_step: float = DOCK_SWEEP_STEP
    sweep_limit: float = 360.0
    wall_reposition: bool = True
    wall_distance: float = DOCK_WALL_DISTANCE

    turn_away_steps: Tuple[float, ...] = (180.0,)
    overshoot: float = DOCK_OVERSHOOT

    check_wedge: bool = True
    wedge_roll: float = DOCK_WEDGE_ROLL
    wedge_pitch: float = DOCK_WEDGE_PITCH
    nudge_distance: float = 0.2
    nudge_time_ms: int = 500
    nudge_reverse: bool = True
    charge_wait: float = DOCK_CHARGE_WAIT
    drive_off_distance: float = DOCK_IDEAL_DISTANCE - 0.1

    docked_yaw_tolerance: float = 5.0
    shimmy_retries: int = 10
    shimmy_turn: float = 10.0
    shimmy_distance: float = 0.15
    shimmy_pause: float = 1.0

    head_pitches: Tuple[float, ...] = (0.0,)
    head_roll: float = -5.0
    head_yaw: float = -2.0

    beacon_wait: float = DOCK_BEACON_WAIT
    look_wait: float = DOCK_LOOK_WAIT
    detector_start_wait: float = DOCK_DETECTOR_START_WAIT
    detector_restarts: int = DOCK_DETECTOR_RESTARTS
    detector_restart_wait: float = DOCK_DETECTOR_RESTART_WAIT
    charge_poll_interval: float = DOCK_CHARGE_POLL_INTERVAL

    @classmethod
    def wedge(cls) -> "DockingConfig":
        """Charger with an alignment wedge: tight tolerances, turn-away retries."""
        return cls()

    @classmethod
    def shimmy(cls) -> "DockingConfig":
        """Looser alignment, then wiggle onto the rail until charging."""
        return cls(
            name="shimmy",
            recovery=Recovery.SHIMMY,
            align_max_retries=4,
            lateral_tolerance=0.05,
            center_offset=0.02,
            min_corrective_turn=5.0,
            ideal_distance=1.1,
            drive_off_distance=1.0,
            head_pitches=(7.0,),
            head_roll=0.0,
            head_yaw=0.0,
        )

    @classmethod
    def compact(cls) -> "DockingConfig":
        """Small charger with a rail: move-sequence alignment 0.3m out, no wedge."""
        return cls(
            name="compact",
            align_strategy=AlignStrategy.MOVE_SEQUENCE,
            align_max_retries=6,
            lateral_tolerance=0.01,
            yaw_tolerance=2.5,
            forward_tolerance=(-0.02, 0.04),
            center_offset=0.035,
            ideal_distance=0.3,
            initial_rotation=45.0,
            sweep_step=12.0,
            sweep_limit=120.0,
            wall_reposition=False,
            # Two 91° turns: the robot tends to under-rotate and a single
            # 180° request can resolve either way
            turn_away_steps=(91.0, 91.0),
            overshoot=0.1,
            check_wedge=False,
            nudge_distance=0.01,
            nudge_time_ms=1000,
            nudge_reverse=False,
            charge_wait=8.0,
            drive_off_distance=0.4,
            head_pitches=(35.0, 15.0),
            head_roll=0.0,
            head_yaw=0.0,
            beacon_wait=2.0,
            look_wait=1.0,
        )

    def with_offsets(self, offsets: DockingOffsets) -> "DockingConfig":
        """Fold a robot's manual docking corrections into this configuration."""
        return dataclasses.replace(
            self,
            center_offset=self.center_offset + offsets.charger_y_offset,
            head_roll=self.head_roll + offsets.head_roll_offset,
            head_yaw=self.head_yaw + offsets.head_yaw_offset,
        )


DOCKING_PRESETS = {
    "wedge": DockingConfig.wedge,
    "shimmy": DockingConfig.shimmy,
    "compact": DockingConfig.compact,
}


class DockingController:
    """Finds the charger, lines up, backs on, and confirms charging.

    Attributes:
        config: Docking strategy and parameters.
        state: Current state of the state machine.
        attempts: Number of docking attempts made by the last ``dock()`` call.
        last_fault: Reason for the last failure.
    """

    def __init__(
        self,
        robot: RobotInterface,
        telemetry: RobotTelemetry,
        motion: MotionExecutor,
        abort: AbortToken,
        config: Optional[DockingConfig] = None,
        data_collector: Optional[DataCollector] = None,
    ) -> None:
        self.robot = robot
        self.telemetry = telemetry
        self.motion = motion
        self.abort = abort
        self.config = config or DockingConfig.wedge()
        self.data_collector = data_collector

        self.state = DockingState.SEARCHING
        self.attempts = 0
        self.last_fault: Optional[Fault] = None

        self._initial_yaw = 0.0
        self._initial_pitch = 0.0
        self._beacon_distance = 0.0
        self._expected_docked_yaw = 0.0

    async def dock(self) -> bool:
        """Run docking attempts until docked, out of retries, or aborted."""
        cfg = self.config
        self.attempts = 0
        self.last_fault = None
        self._set_state(DockingState.SEARCHING, f"strategy {cfg.name}")
        await self.motion.speak("Initiating charger docking.")

        state = self.telemetry.kinematic_state()
        # Pitch can read a few degrees off level; wedge detection is relative to it
        self._initial_pitch = state.pitch
        self._initial_yaw = state.yaw

        try:
            await self.robot.register_event(EventType.BATTERY)
            await self.robot.register_event(EventType.CHARGER_POSE, debounce_ms=DOCK_BEACON_DEBOUNCE_MS)
            await self.robot.register_event(EventType.TIME_OF_FLIGHT)

            if not await self._start_detector():
                return self._finish(False)

            while self.attempts < cfg.max_retries and not self.abort.aborted:
                self.attempts += 1
                logging.info(f"{TERM_BLUE}Docking attempt {self.attempts}/{cfg.max_retries}{TERM_RESET}")
                if await self._attempt():
                    return self._finish(True)
            if self.abort.aborted:
                self.last_fault = Fault.ABORTED
            elif self.last_fault is None:
                self.last_fault = Fault.PHASE_FAILURE
            return self._finish(False)
        except RobotCommandError as e:
            self._fault(Fault.COMMAND_ERROR, f"Docking command failed: {e}")
            return self._finish(False)
        finally:
            await self._cleanup()

    # ------------------------------------------------------------------
    # Attempt
    # ------------------------------------------------------------------

    async def _attempt(self) -> bool:
        cfg = self.config
        self.telemetry.charging.clear()

        self._set_state(DockingState.SEARCHING)
        if not await self._search_with_head():
            await self.motion.speak("I can't find the charger.")
            return False

        self._set_state(DockingState.ALIGNING)
        if cfg.align_strategy is AlignStrategy.MOVE_SEQUENCE:
            aligned = await self._align_move_sequence()
        else:
            aligned = await self._align_offset()
        if not aligned:
            return False

        pose = self._beacon_pose()
        if pose is None:
            return self._fault(Fault.PHASE_FAILURE, "Lost the charger after aligning")
        self._beacon_distance = pose.x
        self._expected_docked_yaw = normalize_turn(self.telemetry.yaw + 180.0)
        self._set_state(DockingState.TURNING_AWAY, f"beacon {pose}")
        for step in cfg.turn_away_steps:
            if not await self.motion.turn(step):
                return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Turn away from charger failed")

        backing = self._beacon_distance + cfg.overshoot
        self._set_state(DockingState.BACKING_ON, f"{backing:.3f}m")
        if not await self.motion.drive(-backing, slow=True):
            if self.abort.aborted:
                return self._fault(Fault.ABORTED, "Docking aborted while backing on")
            # The dock stops the robot short of the commanded distance
            logging.info(f"Backing on stopped early ({self.motion.last_fault}); verifying mount")

        self._set_state(DockingState.VERIFYING)
        return await self._verify()

    async def _search_with_head(self) -> bool:
        cfg = self.config
        for pitch in cfg.head_pitches:
            if not await self.motion.move_head(pitch, cfg.head_roll, cfg.head_yaw):
                logging.warning(f"Head did not confirm pitch {pitch:.0f}°, searching anyway")
            if self.abort.aborted:
                return self._fault(Fault.ABORTED, "Docking aborted")
            if await self._search():
                return True
        return False

    # ------------------------------------------------------------------
    # Searching
    # ------------------------------------------------------------------

    async def _look(self, timeout: float) -> bool:
        """Discard beacon history and refill the averaging window from the current view.

        Waits until the window is full or ``timeout`` passes. A partially filled
        window still counts as a sighting.

        Returns:
            True if at least one reading arrived and the run was not aborted.
        """
        self.telemetry.reset_beacon()
        version = self.telemetry.charger.version
        window = self.telemetry.beacon_window
        await self.abort.wait_for(lambda: len(window) >= window.capacity, timeout)
        if self.abort.aborted:
            return False
        return self.telemetry.charger.version > version

    async def _search(self) -> bool:
        cfg = self.config
        logging.info("Searching for charger")
        if await self._look(cfg.beacon_wait):
            logging.info(f"Charger visible at {self._beacon_pose()}")
            return True
        if self.abort.aborted:
            return self._fault(Fault.ABORTED, "Docking aborted")

        if not await self.motion.turn(cfg.initial_rotation):
            return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Search rotation failed")
        if await self._sweep():
            return True

        if cfg.wall_reposition and not self.abort.aborted:
            # Assume the charger sits against the wall the robot started facing
            await self.motion.turn(angle_delta(self.telemetry.yaw, self._initial_yaw))
            distance = self.motion.front_range()
            if distance is not None:
                logging.info(f"Repositioning {distance - cfg.wall_distance:.2f}m from wall at {distance:.2f}m")
                await self.motion.drive(distance - cfg.wall_distance)
                if await self.motion.turn(cfg.initial_rotation) and await self._sweep():
                    return True
        if self.abort.aborted:
            return self._fault(Fault.ABORTED, "Docking aborted")
        return self._fault(Fault.PHASE_FAILURE, "Never found the charger")

    async def _sweep(self) -> bool:
        cfg = self.config
        turned = 0.0
        while turned < cfg.sweep_limit:
            if not await self.motion.turn(-cfg.sweep_step):
                return False
            turned += cfg.sweep_step
            if await self._look(cfg.look_wait):
                logging.info(f"Charger found after sweeping {turned:.0f}° at {self._beacon_pose()}")
                return True
            if self.abort.aborted:
                return False
        logging.info(f"Charger not found after sweeping {turned:.0f}°")
        return False

    # ------------------------------------------------------------------
    # Aligning
    # ------------------------------------------------------------------

    def _beacon_pose(self) -> Optional[Pose2D]:
        sample = self.telemetry.charger.latest
        if sample is None:
            return None
        return sample.to_pose2d(self.config.center_offset)

    def _aligned(self, pose: Pose2D) -> bool:
        cfg = self.config
        if abs(pose.y) > cfg.lateral_tolerance or abs(pose.yaw_degrees) > cfg.yaw_tolerance:
            return False
        if cfg.align_strategy is AlignStrategy.MOVE_SEQUENCE:
            low, high = cfg.forward_tolerance
            return low <= pose.x - cfg.ideal_distance <= high
        return True

    async def _fresh_pose(self) -> Optional[Pose2D]:
        if not await self._look(self.config.look_wait):
            return None
        return self._beacon_pose()

    async def _align_offset(self) -> bool:
        cfg = self.config
        pose = self._beacon_pose()
        retries = 0
        while pose is None or not self._aligned(pose):
            if self.abort.aborted:
                return self._fault(Fault.ABORTED, "Docking aborted")
            if pose is None:
                return self._fault(Fault.PHASE_FAILURE, "Lost sight of the charger")
            retries += 1
            if retries > cfg.align_max_retries:
                return self._fault(Fault.TOLERANCE_EXCEEDED, "Failed to align with charger")
            logging.info(f"Charger at {pose}, aligning (pass {retries})")

            pose = await self._face_beacon(pose)
            if pose is None:
                return False
            if self._aligned(pose):
                break

            pose = await self._correct_offset(pose)
            if pose is None:
                return False
            if abs(pose.x - cfg.ideal_distance) > cfg.forward_tolerance[1]:
                if not await self.motion.drive(pose.x - cfg.ideal_distance):
                    return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Approach drive failed")
                pose = await self._fresh_pose()
        logging.info(f"Aligned with charger at {pose}")
        return True

    async def _face_beacon(self, pose: Pose2D) -> Optional[Pose2D]:
        """Turn until the beacon is straight ahead. Returns the new pose, None on failure."""
        cfg = self.config
        for _ in range(cfg.align_max_retries):
            if abs(pose.y) <= cfg.lateral_tolerance:
                return pose
            bearing = math.degrees(math.atan2(pose.y, pose.x))
            # Very small turns are unreliable; overshoot and come back instead
            if abs(bearing) < cfg.min_corrective_turn:
                bearing = math.copysign(cfg.min_corrective_turn, bearing)
            if not await self.motion.turn(bearing):
                self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Turn toward charger failed")
                return None
            next_pose = await self._fresh_pose()
            if next_pose is None:
                self._fault(Fault.PHASE_FAILURE, "Lost sight of the charger while facing it")
                return None
            pose = next_pose
        if abs(pose.y) <= cfg.lateral_tolerance:
            return pose
        self._fault(Fault.TOLERANCE_EXCEEDED, f"Could not face charger, lateral offset {pose.y:.3f}m")
        return None

    async def _correct_offset(self, pose: Pose2D) -> Optional[Pose2D]:
        """Step sideways onto the dock's centre line, then face the dock again.

        With the beacon straight ahead at distance d and relative yaw b, the
        robot sits d*sin(b) off the centre line.
        """
        beta = pose.yaw_degrees
        offset = pose.x * math.sin(math.radians(beta))
        if offset > 0:
            first, last = beta - 90.0, 90.0
        else:
            first, last = beta + 90.0, -90.0

        logging.info(f"Correcting {offset:.3f}m offset: turn {first:.1f}°, drive {abs(offset):.3f}m, turn {last:.0f}°")
        if not await self.motion.turn(first):
            self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Perpendicular turn failed")
            return None
        if not await self.motion.drive(abs(offset)):
            self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Offset drive failed")
            return None
        if not await self.motion.turn(last):
            self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Turn back to charger failed")
            return None
        pose = await self._fresh_pose()
        if pose is None:
            self._fault(Fault.PHASE_FAILURE, "Lost sight of the charger after offset correction")
        return pose

    async def _align_move_sequence(self) -> bool:
        cfg = self.config
        goal = Pose2D(cfg.ideal_distance, 0.0, 0.0)
        pose = self._beacon_pose()
        retries = 0
        while pose is None or not self._aligned(pose):
            if self.abort.aborted:
                return self._fault(Fault.ABORTED, "Docking aborted")
            if pose is None:
                await self.motion.speak("Uh oh. I can't see the charger any more.")
                return self._fault(Fault.PHASE_FAILURE, "Lost sight of the charger")
            retries += 1
            if retries > cfg.align_max_retries:
                await self.motion.speak("I can't seem to line up right.")
                return self._fault(Fault.TOLERANCE_EXCEEDED, "Failed to line up with the charger")

            sequence = calculate_move_sequence(pose, goal)
            logging.info(f"Charger at {pose}, moving: {sequence}")
            if not await self.motion.turn(sequence.turn1_degrees):
                return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Move sequence turn failed")
            if not await self.motion.drive(sequence.drive_distance, slow=True):
                return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Move sequence drive failed")
            if not await self.motion.turn(sequence.turn2_degrees):
                return self._fault(self.motion.last_fault or Fault.PHASE_FAILURE, "Move sequence turn failed")
            pose = await self._fresh_pose()
        logging.info(f"Lined up with charger at {pose}")
        return True

    # ------------------------------------------------------------------
    # Verifying
    # ------------------------------------------------------------------

    async def _verify(self) -> bool:
        cfg = self.config
        if not await self.abort.sleep(cfg.look_wait):
            return self._fault(Fault.ABORTED, "Docking aborted")

        if cfg.check_wedge:
            state = self.telemetry.kinematic_state()
            pitch_change = angle_delta(self._initial_pitch, state.pitch)
            if abs(state.roll) > cfg.wedge_roll or abs(pitch_change) > cfg.wedge_pitch:
                logging.warning(f"Robot appears to be on the alignment wedge (roll {state.roll:.1f}°, pitch {pitch_change:.1f}°)")
                await self._drive_off()
                return self._fault(Fault.TOLERANCE_EXCEEDED, "Mounted the alignment wedge")

        if cfg.recovery is Recovery.SHIMMY:
            docked = await self._shimmy()
        else:
            await self.robot.drive_heading(self.telemetry.yaw, cfg.nudge_distance, cfg.nudge_time_ms, cfg.nudge_reverse)
            docked = await self.abort.wait_for(
                lambda: self.telemetry.is_charging, cfg.charge_wait, cfg.charge_poll_interval
            )

        if self.abort.aborted:
            return self._fault(Fault.ABORTED, "Docking aborted")
        if not docked:
            await self.motion.speak("Hmm. I don't seem to be charging. Trying again.")
            await self._drive_off()
            return self._fault(Fault.PHASE_FAILURE, "Charging not detected")
        await self.motion.speak("Ahh. I feel the power.")
        return True

    async def _shimmy(self) -> bool:
        """Wiggle toward the expected docked heading until aligned and charging."""
        cfg = self.config
        settled = await self.abort.wait_for(
            lambda: self.telemetry.is_charging and self._docked_heading(),
            cfg.charge_wait,
            cfg.charge_poll_interval,
        )
        if settled:
            return True
        if self.abort.aborted:
            return False
        for attempt in range(1, cfg.shimmy_retries + 1):
            if self._docked_heading() and self.telemetry.is_charging:
                return True
            error = angle_delta(self.telemetry.yaw, self._expected_docked_yaw)
            logging.info(f"Shimmy {attempt}/{cfg.shimmy_retries}: heading error {error:.1f}°, charging {self.telemetry.is_charging}")
            if not self._docked_heading():
                step = math.copysign(min(cfg.shimmy_turn, abs(error)), error)
                await self.robot.drive_arc(normalize_turn(self.telemetry.yaw + step), 0.0, 300)
                if not await self.abort.sleep(cfg.shimmy_pause):
                    return False
            await self.robot.drive_heading(self.telemetry.yaw, cfg.shimmy_distance, 500, True)
            if not await self.abort.sleep(cfg.shimmy_pause):
                return False
            # Charging state updates slowly; only worth waiting for once aligned
            if self._docked_heading() and not self.telemetry.is_charging:
                await self.abort.wait_for(lambda: self.telemetry.is_charging, cfg.charge_wait, cfg.charge_poll_interval)
        return self._docked_heading() and self.telemetry.is_charging

    def _docked_heading(self) -> bool:
        return abs(angle_delta(self.telemetry.yaw, self._expected_docked_yaw)) < self.config.docked_yaw_tolerance

    async def _drive_off(self) -> None:
        """Leave the dock and face it again for the next attempt."""
        if not await self.motion.drive(self.config.drive_off_distance):
            logging.warning("Drive off the charger failed")
            return
        await self.motion.turn(180.0)

    # ------------------------------------------------------------------
    # Detector service
    # ------------------------------------------------------------------

    def _detector_running(self) -> bool:
        status = self.telemetry.slam.latest
        return status is not None and status.docking_detector_running

    async def _start_detector(self) -> bool:
        """Start the beacon detector, restarting its service if it never comes up."""
        cfg = self.config
        await self.robot.register_event(EventType.SLAM_STATUS)
        try:
            logging.info("Starting dock detector")
            await self.robot.start_locating_docking_station()
            await self.abort.wait_for(self._detector_running, cfg.detector_start_wait)

            restarts = 0
            while not self._detector_running() and restarts < cfg.detector_restarts:
                if self.abort.aborted:
                    return self._fault(Fault.ABORTED, "Docking aborted")
                restarts += 1
                logging.warning(f"Dock detector did not start, restarting service ({restarts}/{cfg.detector_restarts})")
                await self.robot.restart_slam_service()
                if not await self.abort.sleep(cfg.detector_restart_wait):
                    return self._fault(Fault.ABORTED, "Docking aborted")
                await self.robot.start_locating_docking_station()
                await self.abort.wait_for(self._detector_running, cfg.detector_start_wait)
        finally:
            await self.robot.unregister_event(EventType.SLAM_STATUS)

        if not self._detector_running():
            return self._fault(Fault.SERVICE_UNAVAILABLE, "Dock detector unavailable")
        return True

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    async def _cleanup(self) -> None:
        logging.debug("Charger docker cleanup")
        try:
            await self.robot.stop_locating_docking_station()
            for event in (EventType.CHARGER_POSE, EventType.BATTERY, EventType.TIME_OF_FLIGHT):
                await self.robot.unregister_event(event)
        except RobotCommandError as e:
            logging.warning(f"Docking cleanup incomplete: {e}")

    def _set_state(self, state: DockingState, detail: str = "") -> None:
        self.state = state
        logging.info(f"Docking state: {state.value}{' - ' + detail if detail else ''}")
        if self.data_collector is not None:
            self.data_collector.log_docking(self.attempts, state.value, detail)

    def _finish(self, docked: bool) -> bool:
        if docked:
            self.last_fault = None
            self._set_state(DockingState.DOCKED)
        else:
            self._set_state(DockingState.FAILED, self.last_fault.value if self.last_fault else "")
        return docked

    def _fault(self, fault: Fault, message: str) -> bool:
        self.last_fault = fault
        logging.warning(message)
        return False
