"""Robot command interface consumed by the control core.

Motion primitives are fire-and-confirm: a command returning means the robot
accepted it, not that it executed. Confirmation is done by the caller from
telemetry. Implementations raise ``RobotCommandError`` when a command cannot
be delivered at all.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional


class EventType(Enum):
    """Robot event streams that can be subscribed to."""

    ENCODER = "DriveEncoders"
    IMU = "IMU"
    CHARGER_POSE = "ChargerPoseMessage"
    FIDUCIAL = "ArTagPoseMessage"
    BATTERY = "BatteryCharge"
    ACTUATOR = "ActuatorPosition"
    TIME_OF_FLIGHT = "TimeOfFlight"
    HAZARD = "HazardNotification"
    SLAM_STATUS = "SlamStatus"
    SELF_STATE = "SelfState"


class RobotInterface(ABC):
    """Abstract robot command surface.

    Angles are degrees, distances meters, durations milliseconds, matching the
    robot's own command units.
    """

    @abstractmethod
    async def drive_heading(
        self, heading: float, distance: float, time_ms: int, reverse: bool = False
    ) -> None:
        """Drive ``distance`` meters along an absolute heading within ``time_ms``."""

    @abstractmethod
    async def drive_arc(self, heading: float, radius: float, time_ms: int, reverse: bool = False) -> None:
        """Arc (radius 0 = turn in place) until the absolute heading is reached."""

    @abstractmethod
    async def move_head(self, pitch: float, roll: float, yaw: float, velocity: float) -> None:
        """Move the head to absolute angles."""

    @abstractmethod
    async def update_hazard_settings(self, disable_bump: bool, disable_time_of_flight: bool) -> None:
        """Enable or disable the collision safety stops."""

    @abstractmethod
    async def start_locating_docking_station(self) -> None:
        ...

    @abstractmethod
    async def stop_locating_docking_station(self) -> None:
        ...

    @abstractmethod
    async def restart_slam_service(self) -> None:
        """Restart the vision service hosting the beacon detector and tracker."""

    @abstractmethod
    async def start_fiducial_detector(self, dictionary: int, marker_size: float) -> None:
        """Start detecting markers of ``dictionary`` with edge length ``marker_size`` (mm)."""

    @abstractmethod
    async def stop_fiducial_detector(self) -> None:
        ...

    @abstractmethod
    async def set_current_map(self, map_name: str) -> None:
        ...

    @abstractmethod
    async def start_tracking(self) -> None:
        ...

    @abstractmethod
    async def stop_tracking(self) -> None:
        ...

    @abstractmethod
    async def request_map(self) -> None:
        """Ask the tracker to publish its current map and pose."""

    @abstractmethod
    async def request_slam_status(self) -> None:
        """Ask the tracker to publish a fresh status event."""

    @abstractmethod
    async def speak(self, text: str) -> None:
        ...

    @abstractmethod
    async def register_event(
        self, event: EventType, debounce_ms: int = 0, filters: Optional[Dict[str, Any]] = None
    ) -> None:
        """Subscribe to an event stream; samples flow into the telemetry hub."""

    @abstractmethod
    async def unregister_event(self, event: EventType) -> None:
        ...
