"""Telemetry snapshots shared between event callbacks and the control task.

Robot events arrive on a delivery path separate from the control task. Each
stream is written by exactly one callback into a ``TelemetryCell``: the cell
stores an immutable value together with a version number and a monotonic
timestamp, so the control task can read the latest snapshot, detect new
samples by version, and check freshness without racing on raw fields.

The beacon pose stream is additionally filtered through ``PoseAverager``,
a bounded sliding window whose read-modify-write is done under a lock.
"""

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Generic, List, Optional, TypeVar

from .config import BEACON_WINDOW_SIZE, TELEMETRY_TIMEOUT
from .geometry import BeaconSample, Pose2D, normalize_turn

T = TypeVar("T")


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    """One published telemetry value with its version and arrival time."""

    value: T
    version: int
    timestamp: float


class TelemetryCell(Generic[T]):
    """Single-writer, versioned holder for the latest value of a stream.

    Version 0 means nothing has been published yet; every publish bumps the
    version by one.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot[T]] = None
        self._version = 0

    def publish(self, value: T, timestamp: Optional[float] = None) -> Snapshot[T]:
        """Store a new value and return the resulting snapshot."""
        stamp = time.monotonic() if timestamp is None else timestamp
        with self._lock:
            self._version += 1
            self._snapshot = Snapshot(value, self._version, stamp)
            return self._snapshot

    def snapshot(self) -> Optional[Snapshot[T]]:
        with self._lock:
            return self._snapshot

    @property
    def latest(self) -> Optional[T]:
        """Latest value, or None if nothing was published since the last clear."""
        snap = self.snapshot()
        return snap.value if snap is not None else None

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def age(self, now: Optional[float] = None) -> float:
        """Seconds since the last publish (infinite if never published)."""
        snap = self.snapshot()
        if snap is None:
            return math.inf
        current = time.monotonic() if now is None else now
        return max(0.0, current - snap.timestamp)

    def is_stale(self, timeout: float = TELEMETRY_TIMEOUT) -> bool:
        return self.age() > timeout

    def clear(self) -> None:
        """Drop the stored value. The version keeps counting."""
        with self._lock:
            self._snapshot = None


class PoseAverager:
    """Bounded sliding window averaging raw beacon samples.

    Attributes:
        capacity: Maximum number of samples in the window.
    """

    def __init__(self, capacity: int = BEACON_WINDOW_SIZE) -> None:
        if capacity <= 0:
            raise ValueError(f"Window capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._samples: Deque[BeaconSample] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def add(self, sample: BeaconSample) -> BeaconSample:
        """Append a sample and return the new window average."""
        with self._lock:
            self._samples.append(sample)
            return self._mean()

    @property
    def average(self) -> Optional[BeaconSample]:
        """Window average, or None while the window is empty."""
        with self._lock:
            if not self._samples:
                return None
            return self._mean()

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def _mean(self) -> BeaconSample:
        n = len(self._samples)
        return BeaconSample(
            x=sum(s.x for s in self._samples) / n,
            y=sum(s.y for s in self._samples) / n,
            z=sum(s.z for s in self._samples) / n,
            yaw=sum(s.yaw for s in self._samples) / n,
        )


@dataclass(frozen=True)
class ImuSample:
    """Orientation in degrees, each axis normalized to (-180, 180]."""

    yaw: float
    roll: float
    pitch: float


@dataclass(frozen=True)
class HeadPosition:
    """Head actuator angles in degrees."""

    pitch: float
    roll: float
    yaw: float


@dataclass(frozen=True)
class FiducialSample:
    """One fiducial marker detection.

    Attributes:
        marker_id: Marker identifier within its dictionary.
        pose: Marker observation in the robot frame.
    """

    marker_id: int
    pose: Pose2D

    @property
    def is_zero(self) -> bool:
        return self.pose.x == 0.0 and self.pose.y == 0.0


@dataclass(frozen=True)
class SlamStatus:
    """Localization service status as reported by the robot.

    Attributes:
        sensor_status: Camera/sensor state, e.g. "Streaming".
        run_mode: Tracker mode, e.g. "Tracking", "Exploring", "NotTracking".
        status_list: Active service flags, e.g. "DockingStationDetectorEnabled".
    """

    sensor_status: str = ""
    run_mode: str = ""
    status_list: List[str] = field(default_factory=list)

    @property
    def streaming(self) -> bool:
        return self.sensor_status.lower() == "streaming"

    @property
    def tracking(self) -> bool:
        return self.run_mode.lower() == "tracking"

    @property
    def docking_detector_running(self) -> bool:
        """True when the beacon detector is enabled, processing and the camera streams."""
        flags = {flag.lower() for flag in self.status_list}
        return (
            "dockingstationdetectorenabled" in flags
            and "dockingstationdetectorprocessing" in flags
            and self.streaming
        )


@dataclass(frozen=True)
class KinematicState:
    """Point-in-time view of orientation and odometry.

    Attributes:
        yaw: Heading in degrees.
        roll: Roll in degrees.
        pitch: Pitch in degrees.
        left_distance: Left wheel distance since the last encoder reset (meters).
        imu_age: Seconds since the last IMU sample.
        encoder_age: Seconds since the last encoder sample.
    """

    yaw: float
    roll: float
    pitch: float
    left_distance: float
    imu_age: float
    encoder_age: float

    def is_stale(self, timeout: float = TELEMETRY_TIMEOUT) -> bool:
        return self.imu_age > timeout or self.encoder_age > timeout


class RobotTelemetry:
    """Hub of telemetry cells, fed by robot event callbacks.

    Each ``on_*`` method is the single writer of its cell. The control task
    only reads.
    """

    def __init__(self, beacon_window: int = BEACON_WINDOW_SIZE) -> None:
        self.imu: TelemetryCell[ImuSample] = TelemetryCell("imu")
        self.encoder: TelemetryCell[float] = TelemetryCell("encoder")
        self.charger: TelemetryCell[BeaconSample] = TelemetryCell("charger")
        self.fiducial: TelemetryCell[FiducialSample] = TelemetryCell("fiducial")
        self.charging: TelemetryCell[bool] = TelemetryCell("charging")
        self.head: TelemetryCell[HeadPosition] = TelemetryCell("head")
        self.front_range: TelemetryCell[float] = TelemetryCell("front_range")
        self.hazard: TelemetryCell[bool] = TelemetryCell("hazard")
        self.slam: TelemetryCell[SlamStatus] = TelemetryCell("slam")
        self.map_pose: TelemetryCell[Pose2D] = TelemetryCell("map_pose")
        self.beacon_window = PoseAverager(beacon_window)

    # -- writers ------------------------------------------------------------

    def on_encoder(self, left_distance: float) -> None:
        self.encoder.publish(float(left_distance))

    def on_imu(self, yaw: float, roll: float, pitch: float) -> None:
        """Record an orientation sample given in the robot's [0, 360) convention.

        Negative raw yaw values only occur as transient glitches and are dropped.
        """
        if yaw < 0.0:
            logging.debug(f"Ignoring IMU yaw spike: {yaw:.1f}")
            return
        self.imu.publish(ImuSample(normalize_turn(yaw), normalize_turn(roll), normalize_turn(pitch)))

    def on_charger_pose(self, sample: BeaconSample) -> None:
        if sample.is_zero:
            return
        self.charger.publish(self.beacon_window.add(sample))

    def on_fiducial(self, sample: FiducialSample) -> None:
        self.fiducial.publish(sample)

    def on_battery(self, charging: bool) -> None:
        self.charging.publish(bool(charging))

    def on_actuator(self, pitch: float, roll: float, yaw: float) -> None:
        self.head.publish(HeadPosition(pitch, roll, yaw))

    def on_tof(self, front_range: float) -> None:
        self.front_range.publish(float(front_range))

    def on_hazard(self, active: bool) -> None:
        self.hazard.publish(bool(active))

    def on_slam_status(self, status: SlamStatus) -> None:
        self.slam.publish(status)

    def on_self_state(self, pose: Pose2D) -> None:
        self.map_pose.publish(pose)

    # -- readers ------------------------------------------------------------

    def reset_beacon(self) -> None:
        """Forget beacon history so the next reading reflects the current view."""
        self.beacon_window.clear()
        self.charger.clear()

    def kinematic_state(self) -> KinematicState:
        imu = self.imu.latest or ImuSample(0.0, 0.0, 0.0)
        encoder = self.encoder.latest
        return KinematicState(
            yaw=imu.yaw,
            roll=imu.roll,
            pitch=imu.pitch,
            left_distance=encoder if encoder is not None else 0.0,
            imu_age=self.imu.age(),
            encoder_age=self.encoder.age(),
        )

    @property
    def yaw(self) -> float:
        imu = self.imu.latest
        return imu.yaw if imu is not None else 0.0

    @property
    def hazard_active(self) -> bool:
        return bool(self.hazard.latest)

    @property
    def is_charging(self) -> bool:
        return bool(self.charging.latest)

    def wait_condition(self, cell: TelemetryCell[T], since_version: int) -> Callable[[], bool]:
        """Predicate that becomes true once ``cell`` publishes past ``since_version``."""
        return lambda: cell.version > since_version
