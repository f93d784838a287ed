"""Ground-plane geometry for landmark-relative motion planning.

This module holds the pure functions every other component builds on: angle
normalization, detector transform conversion, and the move-sequence planner
that turns two observations of the same landmark into a turn-drive-turn plan.

Frame conventions (shared by the whole package):
    - Robot frame: +x forward, +y left, yaw positive counter-clockwise.
    - A landmark observation is a Pose2D giving the landmark's position in the
      robot frame and its relative yaw. Yaw 0 means the landmark faces the
      observer squarely; internally the landmark's own x-axis (its facing
      direction) is rotated by ``yaw + pi`` from the robot's x-axis.
    - Detector frame: +z forward, +x right, +y down.
"""

import math
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

MatrixLike = Union[Sequence[float], npt.NDArray[np.float64]]


def normalize_turn(degrees: float) -> float:
    """Reduce an angle to the half-open range (-180, 180].

    The reduction is exact for every finite input, so the function is
    idempotent: ``normalize_turn(normalize_turn(a)) == normalize_turn(a)``.

    Args:
        degrees: Any finite angle in degrees.

    Returns:
        Equivalent angle in (-180, 180].

    Example:
        >>> normalize_turn(270.0)
        -90.0
        >>> normalize_turn(-180.0)
        180.0
    """
    angle = math.fmod(degrees, 360.0)
    if angle > 180.0:
        angle -= 360.0
    elif angle <= -180.0:
        angle += 360.0
    return angle


def normalize_radians(radians: float) -> float:
    """Reduce an angle to the half-open range (-pi, pi]."""
    full = 2.0 * math.pi
    angle = math.fmod(radians, full)
    if angle > math.pi:
        angle -= full
    elif angle <= -math.pi:
        angle += full
    return angle


def angle_delta(from_degrees: float, to_degrees: float) -> float:
    """Signed shortest rotation (degrees) that takes one heading to another."""
    return normalize_turn(to_degrees - from_degrees)


def rotation(theta: float) -> npt.NDArray[np.float64]:
    """2x2 counter-clockwise rotation matrix for an angle in radians."""
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s], [s, c]])


@dataclass(frozen=True)
class Pose2D:
    """Position and heading in a ground plane.

    Attributes:
        x: Forward (robot frame) or map x coordinate in meters.
        y: Left (robot frame) or map y coordinate in meters.
        yaw: Heading in radians, normalized to (-pi, pi] on construction.
    """

    x: float
    y: float
    yaw: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        object.__setattr__(self, "yaw", normalize_radians(float(self.yaw)))

    @classmethod
    def from_degrees(cls, x: float, y: float, yaw_degrees: float) -> "Pose2D":
        """Build a pose from a heading given in degrees."""
        return cls(x, y, math.radians(normalize_turn(yaw_degrees)))

    @property
    def yaw_degrees(self) -> float:
        """Heading in degrees, in (-180, 180]."""
        return normalize_turn(math.degrees(self.yaw))

    @property
    def distance(self) -> float:
        """Straight-line distance from the frame origin (meters)."""
        return math.hypot(self.x, self.y)

    @property
    def position(self) -> npt.NDArray[np.float64]:
        return np.array([self.x, self.y])

    def __str__(self) -> str:
        return f"({self.x:.3f}, {self.y:.3f}, {self.yaw_degrees:.1f}°)"


@dataclass(frozen=True)
class MoveSequence:
    """Rotate, translate, rotate maneuver between two landmark observations.

    Attributes:
        turn1: First rotation in radians, (-pi, pi].
        drive_distance: Straight drive after the first rotation (meters, >= 0).
        turn2: Final rotation in radians, (-pi, pi].
    """

    turn1: float
    drive_distance: float
    turn2: float

    @property
    def turn1_degrees(self) -> float:
        return normalize_turn(math.degrees(self.turn1))

    @property
    def turn2_degrees(self) -> float:
        return normalize_turn(math.degrees(self.turn2))

    def __str__(self) -> str:
        return (
            f"turn {self.turn1_degrees:.1f}°, drive {self.drive_distance:.3f}m, "
            f"turn {self.turn2_degrees:.1f}°"
        )


@dataclass(frozen=True)
class BeaconSample:
    """Raw beacon pose sample in detector coordinates.

    Attributes:
        x: Lateral offset, positive to the right (meters).
        y: Vertical offset, positive down (meters).
        z: Forward distance (meters).
        yaw: Relative yaw of the beacon, counter-clockwise positive (degrees).
    """

    x: float
    y: float
    z: float
    yaw: float

    @property
    def is_zero(self) -> bool:
        """True for the all-zero sample the detector emits when it lost the target."""
        return self.x == 0.0 and self.y == 0.0 and self.z == 0.0

    def to_pose2d(self, lateral_offset: float = 0.0) -> Pose2D:
        """Convert to the robot frame, shifting sideways by ``lateral_offset`` meters.

        The offset is applied in detector coordinates (positive = right), which
        is where the camera-to-rail correction is measured.
        """
        return Pose2D(self.z, -(self.x + lateral_offset), math.radians(self.yaw))


def _as_matrix(matrix: MatrixLike) -> npt.NDArray[np.float64]:
    m = np.asarray(matrix, dtype=float)
    if m.shape == (16,):
        # Detectors report OpenGL-style column-major arrays
        return m.reshape((4, 4), order="F")
    if m.shape == (4, 4):
        return m
    raise ValueError(f"Expected a 4x4 transform or 16 values, got shape {m.shape}")


def convert_detector_pose(matrix: MatrixLike) -> Pose2D:
    """Extract a ground-plane pose from a detector's Euclidean transform.

    The detector reports the marker pose in camera coordinates (z forward,
    x right, y down). The ground-plane projection keeps the forward distance
    as x, the negated lateral offset as y, and the out-of-plane rotation
    about the camera's vertical axis as yaw.

    Args:
        matrix: 4x4 transform, or 16 values in column-major order.

    Returns:
        Marker pose in the robot frame.

    Raises:
        ValueError: If the input is not a 4x4 transform.
    """
    m = _as_matrix(matrix)
    yaw = math.asin(float(np.clip(m[2, 0], -1.0, 1.0)))
    return Pose2D(m[2, 3], -m[0, 3], yaw)


def beacon_sample_from_matrix(matrix: MatrixLike) -> BeaconSample:
    """Build a raw beacon sample (detector coordinates) from a transform."""
    m = _as_matrix(matrix)
    yaw = math.degrees(math.atan2(m[2, 1], m[2, 0]))
    return BeaconSample(x=float(m[0, 3]), y=float(m[1, 3]), z=float(m[2, 3]), yaw=yaw)


def swap_coordinate_systems(observation: Pose2D) -> Pose2D:
    """Re-express an observation as the observer's pose in the landmark frame.

    Args:
        observation: Landmark pose as seen from the observer.

    Returns:
        Observer position and heading in the landmark's own frame.
    """
    phi = observation.yaw + math.pi
    origin = rotation(-phi) @ -observation.position
    return Pose2D(origin[0], origin[1], -phi)


def calculate_move_sequence(current: Pose2D, goal: Pose2D) -> MoveSequence:
    """Plan the turn-drive-turn that moves the robot between two observations.

    Both observer positions are moved into the landmark frame, their
    displacement is taken there, and that displacement is rotated back into
    the current robot frame to give bearing and distance. The final turn makes
    up the rest of the required heading change, so that after the maneuver
    the landmark appears as ``goal``.

    Args:
        current: Landmark as observed from the current position.
        goal: Landmark as it should be observed from the goal position.

    Returns:
        MoveSequence satisfying the round-trip law: applying it from the
        current pose reproduces ``goal`` as the new observation.
    """
    here = swap_coordinate_systems(current)
    there = swap_coordinate_systems(goal)
    displacement = there.position - here.position

    # The robot's x-axis sits at here.yaw inside the landmark frame
    local = rotation(-here.yaw) @ displacement
    drive_distance = float(np.hypot(local[0], local[1]))
    heading_change = normalize_radians(there.yaw - here.yaw)

    if drive_distance < 1e-9:
        return MoveSequence(0.0, 0.0, heading_change)

    turn1 = math.atan2(local[1], local[0])
    turn2 = normalize_radians(heading_change - turn1)
    return MoveSequence(normalize_radians(turn1), drive_distance, turn2)


def observe_landmark(landmark: Pose2D, observer: Pose2D) -> Pose2D:
    """Forward model: how a landmark appears from an observer.

    Args:
        landmark: Landmark position and facing direction in a world frame.
        observer: Observer position and heading in the same world frame.

    Returns:
        Landmark observation in the observer's robot frame.
    """
    offset = rotation(-observer.yaw) @ (landmark.position - observer.position)
    return Pose2D(offset[0], offset[1], landmark.yaw - observer.yaw - math.pi)


def apply_move_sequence(start: Pose2D, sequence: MoveSequence) -> Pose2D:
    """Dead-reckon a move sequence from a world pose."""
    heading = start.yaw + sequence.turn1
    return Pose2D(
        start.x + sequence.drive_distance * math.cos(heading),
        start.y + sequence.drive_distance * math.sin(heading),
        heading + sequence.turn2,
    )


def cell_bearing_and_distance(
    from_cell: Tuple[float, float], to_cell: Tuple[float, float], cell_size: float
) -> Tuple[float, float]:
    """Bearing (map frame, degrees) and metric distance between two map cells.

    Args:
        from_cell: Current (x, y) cell coordinates.
        to_cell: Target (x, y) cell coordinates.
        cell_size: Cell edge length in meters.

    Returns:
        Tuple of (bearing_degrees, distance_meters).
    """
    dx = to_cell[0] - from_cell[0]
    dy = to_cell[1] - from_cell[1]
    bearing = math.degrees(math.atan2(dy, dx)) if (dx or dy) else 0.0
    return normalize_turn(bearing), math.hypot(dx, dy) * cell_size
