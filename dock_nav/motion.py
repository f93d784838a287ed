"""Verified motion primitives on top of fire-and-confirm robot commands.

Individual drive and turn commands are not guaranteed to execute: they can be
dropped, cut short by a safety stop, or physically blocked. The executor
issues a command, then watches encoder and orientation telemetry until the
move is confirmed, re-issuing, waiting out hazards, or failing as needed.

Every operation returns a bool. On failure the reason is available as
``MotionExecutor.last_fault``.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from .cancellation import AbortToken
from .config import (
    DRIVE_BASE_DURATION_MS,
    DRIVE_COMPLETION_RATIO,
    DRIVE_COMPLETION_TOLERANCE,
    DRIVE_MS_PER_METER,
    DRIVE_NO_PROGRESS_RETRIES,
    DRIVE_POLL_INTERVAL,
    DRIVE_SETTLE_WAIT,
    DRIVE_SLOW_FACTOR,
    DRIVE_TIMEOUT_FACTOR,
    DRIVE_TIMEOUT_MARGIN,
    ENCODER_RESET_DURATION_MS,
    ENCODER_RESET_RETRIES,
    ENCODER_RESET_WAIT,
    HAZARD_POLL_INTERVAL,
    HAZARD_WAIT_POLLS,
    HEAD_MOVE_WAIT,
    HEAD_RETRIES,
    HEAD_TOLERANCE,
    HEAD_VELOCITY,
    MIN_DRIVE_DISTANCE,
    MIN_TURN_DEGREES,
    TELEMETRY_TIMEOUT,
    TERM_BLUE,
    TERM_RESET,
    TURN_BASE_DURATION_MS,
    TURN_FINAL_PAD,
    TURN_MIN_MOVEMENT,
    TURN_MS_PER_90_DEGREES,
    TURN_REISSUE_RETRIES,
    TURN_SETTLE_WAIT,
    TURN_STABLE_MAX_POLLS,
    TURN_STABLE_POLL_INTERVAL,
    TURN_STABLE_THRESHOLD,
    TURN_TOLERANCE,
    TURN_VERIFY_THRESHOLD,
)
from .data_collector import DataCollector
from .errors import Fault, RobotCommandError
from .geometry import angle_delta, normalize_turn
from .robot import EventType, RobotInterface
from .telemetry import RobotTelemetry

ENCODER_ZERO = 0.001
"""Encoder readings below this count as zero (meters)."""


@dataclass
class MotionSettings:
    """Thresholds, timings and retry bounds of the motion executor.

    Defaults come from ``config``; tests shrink the waits to run instantly.
    """

    telemetry_timeout: float = TELEMETRY_TIMEOUT

    min_drive_distance: float = MIN_DRIVE_DISTANCE
    drive_base_duration_ms: int = DRIVE_BASE_DURATION_MS
    drive_ms_per_meter: int = DRIVE_MS_PER_METER
    drive_slow_factor: int = DRIVE_SLOW_FACTOR
    completion_ratio: float = DRIVE_COMPLETION_RATIO
    completion_tolerance: float = DRIVE_COMPLETION_TOLERANCE
    encoder_reset_retries: int = ENCODER_RESET_RETRIES
    encoder_reset_wait: float = ENCODER_RESET_WAIT
    encoder_reset_duration_ms: int = ENCODER_RESET_DURATION_MS
    drive_settle_wait: float = DRIVE_SETTLE_WAIT
    drive_poll_interval: float = DRIVE_POLL_INTERVAL
    no_progress_retries: int = DRIVE_NO_PROGRESS_RETRIES
    drive_timeout_margin: float = DRIVE_TIMEOUT_MARGIN
    drive_timeout_factor: float = DRIVE_TIMEOUT_FACTOR
    hazard_wait_polls: int = HAZARD_WAIT_POLLS
    hazard_poll_interval: float = HAZARD_POLL_INTERVAL

    min_turn: float = MIN_TURN_DEGREES
    turn_base_duration_ms: int = TURN_BASE_DURATION_MS
    turn_ms_per_90: int = TURN_MS_PER_90_DEGREES
    turn_verify_threshold: float = TURN_VERIFY_THRESHOLD
    turn_min_movement: float = TURN_MIN_MOVEMENT
    turn_reissue_retries: int = TURN_REISSUE_RETRIES
    turn_settle_wait: float = TURN_SETTLE_WAIT
    turn_stable_threshold: float = TURN_STABLE_THRESHOLD
    turn_stable_poll_interval: float = TURN_STABLE_POLL_INTERVAL
    turn_stable_max_polls: int = TURN_STABLE_MAX_POLLS
    turn_final_pad: float = TURN_FINAL_PAD
    turn_tolerance: float = TURN_TOLERANCE

    head_tolerance: float = HEAD_TOLERANCE
    head_retries: int = HEAD_RETRIES
    head_move_wait: float = HEAD_MOVE_WAIT
    head_velocity: float = HEAD_VELOCITY


class MotionExecutor:
    """Drive, turn and head motion with telemetry confirmation.

    Attributes:
        robot: Command interface.
        telemetry: Telemetry hub fed by the robot's event stream.
        abort: Run-wide cancellation token.
        settings: Thresholds and timings.
        last_fault: Reason for the most recent failure, None after a success.
    """

    def __init__(
        self,
        robot: RobotInterface,
        telemetry: RobotTelemetry,
        abort: AbortToken,
        settings: Optional[MotionSettings] = None,
        data_collector: Optional[DataCollector] = None,
    ) -> None:
        self.robot = robot
        self.telemetry = telemetry
        self.abort = abort
        self.settings = settings or MotionSettings()
        self.data_collector = data_collector
        self.last_fault: Optional[Fault] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the encoder and orientation streams."""
        await self.robot.register_event(EventType.ENCODER)
        await self.robot.register_event(EventType.IMU)
        await self.robot.register_event(EventType.HAZARD)

    async def stop(self) -> None:
        for event in (EventType.ENCODER, EventType.IMU, EventType.HAZARD):
            try:
                await self.robot.unregister_event(event)
            except RobotCommandError as e:
                logging.warning(f"Could not unregister {event.value}: {e}")

    async def wait_for_telemetry(self, timeout: float) -> bool:
        """Wait until both encoder and IMU streams are live."""
        timeout_s = self.settings.telemetry_timeout
        live = await self.abort.wait_for(
            lambda: not self.telemetry.kinematic_state().is_stale(timeout_s), timeout
        )
        if not live:
            return self._fail(Fault.TELEMETRY_STALE, f"No encoder/IMU telemetry within {timeout:.0f}s")
        return True

    # ------------------------------------------------------------------
    # Drive
    # ------------------------------------------------------------------

    def drive_duration_ms(self, distance: float, slow: bool = False) -> int:
        s = self.settings
        duration = s.drive_base_duration_ms + abs(distance) * s.drive_ms_per_meter
        if slow:
            duration *= s.drive_slow_factor
        return int(duration)

    async def drive(self, distance: float, slow: bool = False) -> bool:
        """Drive straight along the current heading and confirm with the encoder.

        Args:
            distance: Meters to drive; negative drives backward.
            slow: Triple the command duration for careful moves.

        Returns:
            True once the encoder confirms the distance (within 1% or 0.1m).
        """
        self.last_fault = None
        if abs(distance) < self.settings.min_drive_distance:
            logging.debug(f"Skipping drive of {distance:.4f}m (below minimum)")
            return True
        if self.abort.aborted:
            return self._fail(Fault.ABORTED, "Drive aborted before start")
        if not self._telemetry_live("drive"):
            await self.speak("I have lost my wheel encoder signal.")
            return False

        try:
            success = await self._drive(distance, slow)
        except RobotCommandError as e:
            success = self._fail(Fault.COMMAND_ERROR, f"Drive command failed: {e}")
        self._record("drive", distance, success)
        return success

    async def _drive(self, distance: float, slow: bool) -> bool:
        s = self.settings
        target = abs(distance)
        reverse = distance < 0
        duration_ms = self.drive_duration_ms(distance, slow)
        deadline = time.monotonic() + s.drive_timeout_margin + s.drive_timeout_factor * duration_ms / 1000.0

        if not await self._reset_encoder():
            return False

        heading = self.telemetry.yaw
        covered = 0.0
        issue_version = await self._issue_drive(heading, target, duration_ms, reverse)
        if not await self.abort.sleep(s.drive_settle_wait):
            return self._fail(Fault.ABORTED, "Drive aborted")

        no_progress = 0
        while True:
            if self.abort.aborted:
                return self._fail(Fault.ABORTED, "Drive aborted")
            if not self._telemetry_live("drive"):
                return False

            encoder = abs(self.telemetry.encoder.latest or 0.0)
            fresh = self.telemetry.encoder.version > issue_version
            driven = covered + encoder if fresh else covered

            if driven > s.completion_ratio * target or abs(driven - target) < s.completion_tolerance:
                logging.debug(f"Drive complete: {driven:.3f}m of {target:.3f}m")
                return True

            if self.telemetry.hazard_active:
                waited_from = time.monotonic()
                if not await self._wait_out_hazard():
                    return False
                deadline += time.monotonic() - waited_from
                covered = driven
                if not await self._reset_encoder():
                    return False
                remaining = target - covered
                logging.info(f"Hazard cleared, resuming drive for remaining {remaining:.3f}m")
                issue_version = await self._issue_drive(
                    heading, remaining, self.drive_duration_ms(remaining, slow), reverse
                )
            elif fresh and encoder < ENCODER_ZERO:
                no_progress += 1
                if no_progress > s.no_progress_retries:
                    return self._fail(Fault.NO_EFFECT, f"Drive of {distance:.3f}m produced no movement")
                logging.warning(f"Drive produced no movement, re-issuing ({no_progress}/{s.no_progress_retries})")
                issue_version = await self._issue_drive(heading, target - covered, duration_ms, reverse)

            if time.monotonic() > deadline:
                return self._fail(
                    Fault.TOLERANCE_EXCEEDED,
                    f"Drive timed out after {driven:.3f}m of {target:.3f}m",
                )
            if not await self.abort.sleep(s.drive_poll_interval):
                return self._fail(Fault.ABORTED, "Drive aborted")

    async def _issue_drive(self, heading: float, distance: float, duration_ms: int, reverse: bool) -> int:
        """Send a drive command and return the encoder version it was sent at."""
        version = self.telemetry.encoder.version
        await self.robot.drive_heading(heading, distance, duration_ms, reverse)
        return version

    async def _reset_encoder(self) -> bool:
        """Zero the encoder with a null drive command, confirming a fresh zero reading."""
        s = self.settings
        for attempt in range(1, s.encoder_reset_retries + 1):
            version = self.telemetry.encoder.version
            await self.robot.drive_heading(0.0, 0.0, s.encoder_reset_duration_ms)
            if not await self.abort.sleep(s.encoder_reset_wait):
                return self._fail(Fault.ABORTED, "Encoder reset aborted")
            snap = self.telemetry.encoder.snapshot()
            if snap is not None and snap.version > version and abs(snap.value) < ENCODER_ZERO:
                return True
            logging.debug(f"Encoder reset attempt {attempt} not confirmed")
        return self._fail(Fault.NO_EFFECT, f"Encoder did not reset after {s.encoder_reset_retries} attempts")

    async def _wait_out_hazard(self) -> bool:
        s = self.settings
        logging.warning("Safety stop active, waiting for it to clear")
        cleared = await self.abort.wait_for(
            lambda: not self.telemetry.hazard_active,
            s.hazard_wait_polls * s.hazard_poll_interval,
            s.hazard_poll_interval,
        )
        if cleared:
            return True
        if self.abort.aborted:
            return self._fail(Fault.ABORTED, "Drive aborted during safety stop")
        return self._fail(Fault.SAFETY_STOP, "Safety stop did not clear")

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def turn_duration_ms(self, degrees: float) -> int:
        s = self.settings
        return int(s.turn_base_duration_ms + abs(degrees) * s.turn_ms_per_90 / 90.0)

    async def turn(self, degrees: float) -> bool:
        """Turn in place by a relative angle and confirm with the IMU.

        Args:
            degrees: Relative turn, counter-clockwise positive. Normalized first.

        Returns:
            True if the measured heading change is within 5° of the request.
        """
        self.last_fault = None
        degrees = normalize_turn(degrees)
        if abs(degrees) < self.settings.min_turn:
            logging.debug(f"Skipping turn of {degrees:.1f}° (below minimum)")
            return True
        if self.abort.aborted:
            return self._fail(Fault.ABORTED, "Turn aborted before start")
        if not self._telemetry_live("turn"):
            return False

        try:
            success = await self._turn(degrees)
        except RobotCommandError as e:
            success = self._fail(Fault.COMMAND_ERROR, f"Turn command failed: {e}")
        self._record("turn", degrees, success)
        return success

    async def _turn(self, degrees: float) -> bool:
        s = self.settings
        duration_ms = self.turn_duration_ms(degrees)
        start_yaw = self.telemetry.yaw
        target_yaw = normalize_turn(start_yaw + degrees)

        await self.robot.drive_arc(target_yaw, 0.0, duration_ms)
        if not await self.abort.sleep(s.turn_settle_wait):
            return self._fail(Fault.ABORTED, "Turn aborted")

        if abs(degrees) > s.turn_verify_threshold:
            for attempt in range(1, s.turn_reissue_retries + 1):
                if abs(angle_delta(start_yaw, self.telemetry.yaw)) >= s.turn_min_movement:
                    break
                logging.warning(f"Turn produced no movement, re-issuing ({attempt}/{s.turn_reissue_retries})")
                await self.robot.drive_arc(target_yaw, 0.0, duration_ms)
                if not await self.abort.sleep(s.turn_settle_wait):
                    return self._fail(Fault.ABORTED, "Turn aborted")
            if abs(angle_delta(start_yaw, self.telemetry.yaw)) < s.turn_min_movement:
                return self._fail(Fault.NO_EFFECT, f"Turn of {degrees:.1f}° produced no movement")

            if not await self._wait_heading_stable():
                return self._fail(Fault.ABORTED, "Turn aborted")

        if not self._telemetry_live("turn"):
            return False

        actual = angle_delta(start_yaw, self.telemetry.yaw)
        error = abs(angle_delta(actual, degrees))
        if error > s.turn_tolerance:
            return self._fail(
                Fault.TOLERANCE_EXCEEDED,
                f"Turn missed target: requested {degrees:.1f}°, measured {actual:.1f}°",
            )
        logging.debug(f"Turn complete: requested {degrees:.1f}°, measured {actual:.1f}°")
        return True

    async def _wait_heading_stable(self) -> bool:
        """Wait until the heading stops changing. False only on abort."""
        s = self.settings
        previous = self.telemetry.yaw
        for _ in range(s.turn_stable_max_polls):
            if not await self.abort.sleep(s.turn_stable_poll_interval):
                return False
            current = self.telemetry.yaw
            if abs(angle_delta(previous, current)) < s.turn_stable_threshold:
                break
            previous = current
        return await self.abort.sleep(s.turn_final_pad)

    # ------------------------------------------------------------------
    # Head
    # ------------------------------------------------------------------

    async def move_head(self, pitch: float, roll: float = 0.0, yaw: float = 0.0) -> bool:
        """Move the head and confirm the pitch from actuator telemetry.

        The actuator stream is subscribed only for the duration of the call.

        Returns:
            True if the reported pitch came within tolerance of the target.
        """
        self.last_fault = None
        s = self.settings
        try:
            version = self.telemetry.head.version
            await self.robot.register_event(EventType.ACTUATOR)
            try:
                for attempt in range(1, s.head_retries + 1):
                    await self.robot.move_head(pitch, roll, yaw, s.head_velocity)
                    reached = await self.abort.wait_for(
                        lambda: self._head_at(pitch, version), s.head_move_wait
                    )
                    if reached:
                        logging.debug(f"Head at pitch {pitch:.1f}°")
                        return True
                    if self.abort.aborted:
                        return self._fail(Fault.ABORTED, "Head move aborted")
                    logging.warning(f"Head not at pitch {pitch:.1f}° (attempt {attempt}/{s.head_retries})")
            finally:
                await self.robot.unregister_event(EventType.ACTUATOR)
        except RobotCommandError as e:
            return self._fail(Fault.COMMAND_ERROR, f"Head command failed: {e}")
        return self._fail(Fault.NO_EFFECT, f"Head did not reach pitch {pitch:.1f}°")

    def _head_at(self, pitch: float, since_version: int) -> bool:
        snap = self.telemetry.head.snapshot()
        if snap is None or snap.version <= since_version:
            return False
        return abs(snap.value.pitch - pitch) <= self.settings.head_tolerance

    # ------------------------------------------------------------------
    # Hazard system
    # ------------------------------------------------------------------

    async def enable_hazard_system(self) -> bool:
        """Restore the default collision safety stops."""
        try:
            await self.robot.update_hazard_settings(disable_bump=False, disable_time_of_flight=False)
        except RobotCommandError as e:
            logging.error(f"Could not re-enable hazard system: {e}")
            return False
        logging.debug("Hazard system enabled")
        return True

    async def disable_hazard_system(self) -> bool:
        """Disable bump and time-of-flight safety stops for close maneuvers."""
        try:
            await self.robot.update_hazard_settings(disable_bump=True, disable_time_of_flight=True)
        except RobotCommandError as e:
            logging.error(f"Could not disable hazard system: {e}")
            return False
        logging.debug("Hazard system disabled")
        return True

    @asynccontextmanager
    async def hazard_suspended(self) -> AsyncIterator[None]:
        """Disable the hazard system for a block, re-enabling it however the block exits."""
        await self.disable_hazard_system()
        try:
            yield
        finally:
            await self.enable_hazard_system()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def speak(self, text: str) -> None:
        """Say something through the robot. Best effort; failures are only logged."""
        logging.info(f"{TERM_BLUE}Robot says: {text}{TERM_RESET}")
        try:
            await self.robot.speak(text)
        except RobotCommandError as e:
            logging.warning(f"Speech failed: {e}")

    def front_range(self) -> Optional[float]:
        """Latest forward time-of-flight range in meters, if any."""
        return self.telemetry.front_range.latest

    def _telemetry_live(self, operation: str) -> bool:
        state = self.telemetry.kinematic_state()
        if state.is_stale(self.settings.telemetry_timeout):
            return self._fail(
                Fault.TELEMETRY_STALE,
                f"Refusing {operation}: telemetry stale "
                f"(encoder {state.encoder_age:.1f}s, IMU {state.imu_age:.1f}s)",
            )
        return True

    def _fail(self, fault: Fault, message: str) -> bool:
        self.last_fault = fault
        logging.warning(message)
        return False

    def _record(self, kind: str, requested: float, success: bool) -> None:
        if self.data_collector is None:
            return
        self.data_collector.log_motion(
            kind,
            requested,
            self.telemetry.kinematic_state(),
            success,
            self.last_fault,
        )
