"""Shared fixtures: a simulated robot living in a flat 2D world.

``FakeRobot`` integrates drive and turn commands into a world pose and
streams telemetry back through the real ``RobotTelemetry`` hub, so the
control code under test sees the same event flow it sees on hardware.

World layout: the charger sits at the origin facing +x; robots approach
from +x and back onto it heading 0. An optional fiducial marker can be
placed anywhere.
"""

import asyncio
import dataclasses
import math
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from dock_nav.cancellation import AbortToken
from dock_nav.docking import DockingConfig, DockingController
from dock_nav.errors import Fault, RobotCommandError
from dock_nav.fiducial import FiducialAligner, FiducialSettings
from dock_nav.geometry import BeaconSample, Pose2D, angle_delta, observe_landmark
from dock_nav.map_nav import MapNavigator, MapSettings
from dock_nav.motion import MotionExecutor, MotionSettings
from dock_nav.robot import EventType, RobotInterface
from dock_nav.telemetry import FiducialSample, RobotTelemetry, SlamStatus

CELL_SIZE = 0.04
STREAM_INTERVAL = 0.002


def fast_motion_settings(**overrides: Any) -> MotionSettings:
    settings = MotionSettings(
        telemetry_timeout=0.5,
        encoder_reset_wait=0.01,
        drive_settle_wait=0.01,
        drive_poll_interval=0.01,
        drive_timeout_margin=1.0,
        drive_timeout_factor=0.0,
        hazard_wait_polls=50,
        hazard_poll_interval=0.01,
        turn_settle_wait=0.01,
        turn_stable_poll_interval=0.01,
        turn_final_pad=0.0,
        head_move_wait=0.2,
    )
    return dataclasses.replace(settings, **overrides)


def fast_docking_config(base: Optional[DockingConfig] = None, **overrides: Any) -> DockingConfig:
    config = dataclasses.replace(
        base or DockingConfig.wedge(),
        beacon_wait=0.1,
        look_wait=0.1,
        detector_start_wait=0.1,
        detector_restart_wait=0.01,
        charge_wait=0.2,
        charge_poll_interval=0.01,
        shimmy_pause=0.01,
    )
    return dataclasses.replace(config, **overrides)


def fast_fiducial_settings(**overrides: Any) -> FiducialSettings:
    return dataclasses.replace(FiducialSettings(initial_timeout=0.3, look_timeout=0.1), **overrides)


def fast_map_settings(**overrides: Any) -> MapSettings:
    return dataclasses.replace(
        MapSettings(map_load_wait=0.01, tracking_wait=0.02, pose_wait=0.2), **overrides
    )


class FakeRobot(RobotInterface):
    """Simulated robot.

    Commands act instantly on the world pose; telemetry for every registered
    event is published on each ``publish()`` tick. Attributes set after
    construction inject faults (ignored commands, hazards, broken services).
    """

    def __init__(
        self,
        telemetry: RobotTelemetry,
        pose: Optional[Pose2D] = None,
        camera_offset: float = DockingConfig.wedge().center_offset,
    ) -> None:
        self.telemetry = telemetry
        self.pose = pose or Pose2D(1.0, 0.0, math.pi)
        self.dock = Pose2D(0.0, 0.0, 0.0)
        self.camera_offset = camera_offset
        self.marker: Optional[Pose2D] = None
        self.marker_id = 7
        self.fov_degrees = 35.0
        self.max_range = 3.0

        self.turn_efficiency = 1.0
        self.large_turn_shortfall = 0.0
        self.drive_efficiency = 1.0
        self.ignore_drives = 0
        self.ignore_turns = 0
        self.hazard_distance: Optional[float] = None
        self.hazard_duration = 0.05
        self.detector_failures = 0
        self.slam_streaming = True
        self.relocalize_after_turns = 0
        self.head_stuck = False
        self.front_range_value = 2.0
        self.charge_radius = 0.08
        self.charge_yaw = 8.0
        self.dock_roll = 0.0
        self.fail_commands: Set[str] = set()

        self.commands: List[Tuple[str, Tuple[Any, ...]]] = []
        self.registered: Set[EventType] = set()
        self.spoken: List[str] = []
        self.hazard_settings: List[Tuple[bool, bool]] = []

        self.encoder = 0.0
        self.head_pitch = 0.0
        self.locating = False
        self.locate_attempts = 0
        self.fiducial_detector = False
        self.tracking = False
        self.turns_since_tracking = 0
        self._hazard_until = 0.0

    # -- bookkeeping ----------------------------------------------------------

    def _record(self, name: str, *args: Any) -> None:
        if name in self.fail_commands:
            raise RobotCommandError(name, "simulated failure")
        self.commands.append((name, args))

    def calls(self, name: str) -> List[Tuple[Any, ...]]:
        return [args for command, args in self.commands if command == name]

    def drives(self) -> List[Tuple[Any, ...]]:
        """Drive commands that move the robot (encoder resets excluded)."""
        return [args for args in self.calls("drive_heading") if args[1] != 0.0]

    # -- world model ----------------------------------------------------------

    def _move(self, distance: float) -> None:
        start = self.pose
        x = start.x + distance * math.cos(start.yaw)
        y = start.y + distance * math.sin(start.yaw)
        # The charger stops a robot backing into it
        if distance < 0 and x < self.dock.x <= start.x + 1e-6 and abs(y) < 0.3:
            fraction = max(0.0, start.x - self.dock.x) / (start.x - x)
            y = start.y + fraction * (y - start.y)
            x = self.dock.x
        self.pose = Pose2D(x, y, start.yaw)

    def _observe(self, landmark: Optional[Pose2D]) -> Optional[Pose2D]:
        if landmark is None:
            return None
        seen = observe_landmark(landmark, self.pose)
        bearing = math.degrees(math.atan2(seen.y, seen.x))
        if seen.x <= 0.05 or abs(bearing) > self.fov_degrees or seen.distance > self.max_range:
            return None
        return seen

    def on_dock(self) -> bool:
        return abs(self.pose.x - self.dock.x) < 0.15 and abs(self.pose.y - self.dock.y) < 0.3

    def charging(self) -> bool:
        return (
            math.hypot(self.pose.x - self.dock.x, self.pose.y - self.dock.y) <= self.charge_radius
            and abs(angle_delta(self.dock.yaw_degrees, self.pose.yaw_degrees)) < self.charge_yaw
        )

    def detector_up(self) -> bool:
        return self.locating and self.locate_attempts > self.detector_failures

    def relocalized(self) -> bool:
        return self.tracking and self.turns_since_tracking >= self.relocalize_after_turns

    # -- telemetry ------------------------------------------------------------

    def publish(self) -> None:
        t = self.telemetry
        if EventType.IMU in self.registered:
            roll = self.dock_roll if self.on_dock() else 0.0
            t.on_imu(self.pose.yaw_degrees % 360.0, roll, 0.0)
        if EventType.ENCODER in self.registered:
            t.on_encoder(self.encoder)
        if EventType.HAZARD in self.registered:
            t.on_hazard(time.monotonic() < self._hazard_until)
        if EventType.ACTUATOR in self.registered:
            t.on_actuator(self.head_pitch, 0.0, 0.0)
        if EventType.CHARGER_POSE in self.registered and self.detector_up():
            seen = self._observe(self.dock)
            if seen is not None:
                t.on_charger_pose(BeaconSample(-seen.y - self.camera_offset, 0.0, seen.x, seen.yaw_degrees))
        if EventType.FIDUCIAL in self.registered and self.fiducial_detector:
            seen = self._observe(self.marker)
            if seen is not None:
                t.on_fiducial(FiducialSample(self.marker_id, seen))
        if EventType.BATTERY in self.registered:
            t.on_battery(self.charging())
        if EventType.TIME_OF_FLIGHT in self.registered:
            t.on_tof(self.front_range_value)
        if EventType.SLAM_STATUS in self.registered:
            flags = ["DockingStationDetectorEnabled", "DockingStationDetectorProcessing"] if self.detector_up() else []
            t.on_slam_status(
                SlamStatus(
                    sensor_status="Streaming" if self.slam_streaming else "Ready",
                    run_mode="Tracking" if self.relocalized() else "NotTracking",
                    status_list=flags,
                )
            )
        if EventType.SELF_STATE in self.registered and self.relocalized():
            t.on_self_state(Pose2D(self.pose.x / CELL_SIZE, self.pose.y / CELL_SIZE, self.pose.yaw))

    async def stream(self) -> None:
        while True:
            self.publish()
            await asyncio.sleep(STREAM_INTERVAL)

    # -- RobotInterface ---------------------------------------------------------

    async def drive_heading(self, heading: float, distance: float, time_ms: int, reverse: bool = False) -> None:
        self._record("drive_heading", heading, distance, time_ms, reverse)
        if distance == 0.0:
            self.encoder = 0.0
            return
        if self.ignore_drives > 0:
            self.ignore_drives -= 1
            return
        travel = distance
        if self.hazard_distance is not None:
            travel = min(distance, self.hazard_distance)
            self.hazard_distance = None
            self._hazard_until = time.monotonic() + self.hazard_duration
        self._move((-travel if reverse else travel) * self.drive_efficiency)
        self.encoder += -travel if reverse else travel

    async def drive_arc(self, heading: float, radius: float, time_ms: int, reverse: bool = False) -> None:
        self._record("drive_arc", heading, radius, time_ms, reverse)
        if self.ignore_turns > 0:
            self.ignore_turns -= 1
            return
        delta = angle_delta(self.pose.yaw_degrees, heading)
        turned = delta * self.turn_efficiency
        if abs(delta) > 150.0:
            turned -= math.copysign(self.large_turn_shortfall, delta)
        self.pose = Pose2D.from_degrees(self.pose.x, self.pose.y, self.pose.yaw_degrees + turned)
        self.turns_since_tracking += 1

    async def move_head(self, pitch: float, roll: float, yaw: float, velocity: float) -> None:
        self._record("move_head", pitch, roll, yaw, velocity)
        if not self.head_stuck:
            self.head_pitch = pitch

    async def update_hazard_settings(self, disable_bump: bool, disable_time_of_flight: bool) -> None:
        self._record("update_hazard_settings", disable_bump, disable_time_of_flight)
        self.hazard_settings.append((disable_bump, disable_time_of_flight))

    async def start_locating_docking_station(self) -> None:
        self._record("start_locating_docking_station")
        self.locating = True
        self.locate_attempts += 1

    async def stop_locating_docking_station(self) -> None:
        self._record("stop_locating_docking_station")
        self.locating = False

    async def restart_slam_service(self) -> None:
        self._record("restart_slam_service")
        self.locating = False

    async def start_fiducial_detector(self, dictionary: int, marker_size: float) -> None:
        self._record("start_fiducial_detector", dictionary, marker_size)
        self.fiducial_detector = True

    async def stop_fiducial_detector(self) -> None:
        self._record("stop_fiducial_detector")
        self.fiducial_detector = False

    async def set_current_map(self, map_name: str) -> None:
        self._record("set_current_map", map_name)

    async def start_tracking(self) -> None:
        self._record("start_tracking")
        self.tracking = True
        self.turns_since_tracking = 0

    async def stop_tracking(self) -> None:
        self._record("stop_tracking")
        self.tracking = False

    async def request_map(self) -> None:
        self._record("request_map")

    async def request_slam_status(self) -> None:
        self._record("request_slam_status")

    async def speak(self, text: str) -> None:
        self._record("speak", text)
        self.spoken.append(text)

    async def register_event(
        self, event: EventType, debounce_ms: int = 0, filters: Optional[Dict[str, Any]] = None
    ) -> None:
        self._record("register_event", event, debounce_ms, filters)
        self.registered.add(event)

    async def unregister_event(self, event: EventType) -> None:
        self._record("unregister_event", event)
        self.registered.discard(event)


class Sim:
    """A streaming FakeRobot plus the components wired to it."""

    def __init__(self, robot: FakeRobot, telemetry: RobotTelemetry, abort: AbortToken) -> None:
        self.robot = robot
        self.telemetry = telemetry
        self.abort = abort
        self.motion = MotionExecutor(robot, telemetry, abort, fast_motion_settings())

    def docker(self, config: Optional[DockingConfig] = None) -> DockingController:
        return DockingController(self.robot, self.telemetry, self.motion, self.abort, config or fast_docking_config())

    def aligner(self, **overrides: Any) -> FiducialAligner:
        return FiducialAligner(self.robot, self.telemetry, self.motion, self.abort, fast_fiducial_settings(**overrides))

    def navigator(self, **overrides: Any) -> MapNavigator:
        return MapNavigator(self.robot, self.telemetry, self.motion, self.abort, fast_map_settings(**overrides))


@pytest.fixture
def telemetry() -> RobotTelemetry:
    return RobotTelemetry()


@pytest.fixture
def abort() -> AbortToken:
    return AbortToken()


@pytest.fixture
async def sim(telemetry, abort):
    """Streaming simulated robot with a started motion executor."""
    robot = FakeRobot(telemetry)
    task = asyncio.create_task(robot.stream())
    harness = Sim(robot, telemetry, abort)
    await harness.motion.start()
    try:
        yield harness
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# ----------------------------------------------------------------------------
# Stub components for path follower tests
# ----------------------------------------------------------------------------


class StubMotion:
    def __init__(self, calls: List[Tuple[Any, ...]], fail: Set[str]) -> None:
        self.calls = calls
        self.fail = fail
        self.last_fault: Optional[Fault] = None

    def _result(self, name: str) -> bool:
        ok = name not in self.fail
        self.last_fault = None if ok else Fault.NO_EFFECT
        return ok

    async def drive(self, distance: float, slow: bool = False) -> bool:
        self.calls.append(("drive", distance))
        return self._result("drive")

    async def turn(self, degrees: float) -> bool:
        self.calls.append(("turn", degrees))
        return self._result("turn")

    async def speak(self, text: str) -> None:
        self.calls.append(("speak", text))

    @asynccontextmanager
    async def hazard_suspended(self):
        self.calls.append(("hazard", "disabled"))
        try:
            yield
        finally:
            self.calls.append(("hazard", "enabled"))


class StubDocker:
    def __init__(self, calls: List[Tuple[Any, ...]], fail: Set[str]) -> None:
        self.calls = calls
        self.fail = fail
        self.last_fault: Optional[Fault] = None

    async def dock(self) -> bool:
        self.calls.append(("dock",))
        ok = "dock" not in self.fail
        self.last_fault = None if ok else Fault.PHASE_FAILURE
        return ok


class StubAligner:
    def __init__(self, calls: List[Tuple[Any, ...]], fail: Set[str]) -> None:
        self.calls = calls
        self.fail = fail
        self.last_fault: Optional[Fault] = None

    async def align(self, dictionary: int, marker_size: float, marker_id: int, goal: Pose2D) -> bool:
        self.calls.append(("align", dictionary, marker_size, marker_id, goal))
        ok = "align" not in self.fail
        self.last_fault = None if ok else Fault.TOLERANCE_EXCEEDED
        return ok


class StubNavigator:
    def __init__(self, calls: List[Tuple[Any, ...]], fail: Set[str]) -> None:
        self.calls = calls
        self.fail = fail
        self.tracking = False
        self.last_fault: Optional[Fault] = None

    async def start_tracking(self, map_name: str) -> bool:
        self.calls.append(("map", map_name))
        self.tracking = "map" not in self.fail
        self.last_fault = None if self.tracking else Fault.SERVICE_UNAVAILABLE
        return self.tracking

    async def move_to(self, x: float, y: float, yaw_degrees: float, tolerance: float) -> bool:
        self.calls.append(("mapgoto", x, y, yaw_degrees, tolerance))
        ok = "mapgoto" not in self.fail
        self.last_fault = None if ok else Fault.TOLERANCE_EXCEEDED
        return ok

    async def cleanup(self) -> None:
        self.calls.append(("map_cleanup",))
        self.tracking = False


class Stubs:
    """Call-recording stand-ins for every component the follower drives."""

    def __init__(self, fail: Set[str] = frozenset()) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.fail = set(fail)
        self.motion = StubMotion(self.calls, self.fail)
        self.docker = StubDocker(self.calls, self.fail)
        self.aligner = StubAligner(self.calls, self.fail)
        self.navigator = StubNavigator(self.calls, self.fail)

    def actions(self) -> List[Tuple[Any, ...]]:
        """Recorded calls other than hazard toggling and speech."""
        return [c for c in self.calls if c[0] not in ("hazard", "speak")]
