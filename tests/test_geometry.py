import math

import numpy as np
import pytest

from dock_nav.geometry import (
    BeaconSample,
    MoveSequence,
    Pose2D,
    angle_delta,
    apply_move_sequence,
    beacon_sample_from_matrix,
    calculate_move_sequence,
    cell_bearing_and_distance,
    convert_detector_pose,
    normalize_radians,
    normalize_turn,
    observe_landmark,
    swap_coordinate_systems,
)


def transform(yaw_degrees: float, tx: float, ty: float, tz: float) -> np.ndarray:
    """Detector transform: rotation about the camera's vertical (y) axis plus translation."""
    a = math.radians(yaw_degrees)
    m = np.eye(4)
    m[0, 0], m[0, 2] = math.cos(a), -math.sin(a)
    m[2, 0], m[2, 2] = math.sin(a), math.cos(a)
    m[:3, 3] = [tx, ty, tz]
    return m


@pytest.mark.parametrize(
    "degrees, expected",
    [(0.0, 0.0), (180.0, 180.0), (-180.0, 180.0), (270.0, -90.0), (-270.0, 90.0), (540.0, 180.0), (359.0, -1.0)],
)
def test_normalize_turn(degrees, expected):
    assert normalize_turn(degrees) == pytest.approx(expected)


@pytest.mark.parametrize("degrees", [-1e6, -721.5, -180.0, 0.1, 179.999, 180.0, 180.001, 12345.678])
def test_normalize_turn_is_idempotent_and_in_range(degrees):
    once = normalize_turn(degrees)
    assert -180.0 < once <= 180.0
    assert normalize_turn(once) == once


def test_normalize_radians_range():
    assert normalize_radians(-math.pi) == pytest.approx(math.pi)
    assert normalize_radians(3 * math.pi / 2) == pytest.approx(-math.pi / 2)


def test_angle_delta_takes_shortest_path():
    assert angle_delta(170.0, -170.0) == pytest.approx(20.0)
    assert angle_delta(-170.0, 170.0) == pytest.approx(-20.0)
    assert angle_delta(10.0, 10.0) == 0.0


def test_pose_yaw_is_normalized_on_construction():
    pose = Pose2D(1.0, 2.0, 3 * math.pi)
    assert pose.yaw == pytest.approx(math.pi)
    assert Pose2D.from_degrees(0, 0, -270).yaw_degrees == pytest.approx(90.0)


def test_convert_detector_pose_accepts_column_major_values():
    m = transform(0.0, 0.1, 0.0, 0.8)
    flat = m.flatten(order="F")
    pose = convert_detector_pose(list(flat))
    assert pose.x == pytest.approx(0.8)
    assert pose.y == pytest.approx(-0.1)
    assert pose.yaw == pytest.approx(0.0)
    assert convert_detector_pose(m) == pose


def test_convert_detector_pose_yaw():
    pose = convert_detector_pose(transform(20.0, 0.0, 0.0, 1.0))
    assert pose.yaw_degrees == pytest.approx(20.0)


def test_convert_detector_pose_rejects_bad_shape():
    with pytest.raises(ValueError):
        convert_detector_pose([1.0, 2.0, 3.0])


def test_beacon_sample_from_matrix():
    sample = beacon_sample_from_matrix(transform(0.0, 0.05, 0.02, 1.2))
    assert sample.x == pytest.approx(0.05)
    assert sample.y == pytest.approx(0.02)
    assert sample.z == pytest.approx(1.2)


def test_beacon_sample_to_pose_applies_lateral_offset():
    pose = BeaconSample(x=0.1, y=0.0, z=1.0, yaw=5.0).to_pose2d(0.04)
    assert pose.x == pytest.approx(1.0)
    assert pose.y == pytest.approx(-0.14)
    assert pose.yaw_degrees == pytest.approx(5.0)
    assert BeaconSample(0.0, 0.0, 0.0, 12.0).is_zero


def test_landmark_seen_squarely_has_zero_yaw():
    landmark = Pose2D(0.0, 0.0, 0.0)
    seen = observe_landmark(landmark, Pose2D(1.0, 0.0, math.pi))
    assert seen.x == pytest.approx(1.0)
    assert seen.y == pytest.approx(0.0, abs=1e-12)
    assert seen.yaw_degrees == pytest.approx(0.0, abs=1e-9)


def test_swap_coordinate_systems_recovers_observer():
    landmark = Pose2D(0.0, 0.0, 0.0)
    observer = Pose2D(1.5, -0.4, math.radians(160))
    here = swap_coordinate_systems(observe_landmark(landmark, observer))
    assert here.x == pytest.approx(observer.x)
    assert here.y == pytest.approx(observer.y)
    assert angle_delta(here.yaw_degrees, observer.yaw_degrees) == pytest.approx(0.0, abs=1e-9)


@pytest.mark.parametrize(
    "observer, goal",
    [
        (Pose2D.from_degrees(1.0, 0.2, 175), Pose2D(0.5, 0.0, 0.0)),
        (Pose2D.from_degrees(2.0, -0.7, 150), Pose2D.from_degrees(0.8, 0.1, 10)),
        (Pose2D.from_degrees(0.6, 0.6, -120), Pose2D.from_degrees(0.3, -0.05, -5)),
    ],
)
def test_move_sequence_round_trip(observer, goal):
    landmark = Pose2D.from_degrees(0.3, -0.2, 15)
    current = observe_landmark(landmark, observer)
    sequence = calculate_move_sequence(current, goal)

    after = observe_landmark(landmark, apply_move_sequence(observer, sequence))
    assert after.x == pytest.approx(goal.x, abs=1e-9)
    assert after.y == pytest.approx(goal.y, abs=1e-9)
    assert angle_delta(after.yaw_degrees, goal.yaw_degrees) == pytest.approx(0.0, abs=1e-7)
    assert sequence.drive_distance >= 0.0


def test_move_sequence_without_displacement_is_pure_turn():
    current = Pose2D.from_degrees(1.0, 0.0, 10)
    sequence = calculate_move_sequence(current, current)
    assert sequence.drive_distance == pytest.approx(0.0, abs=1e-9)
    assert sequence.turn1_degrees + sequence.turn2_degrees == pytest.approx(0.0, abs=1e-7)


def test_apply_move_sequence_drives_along_first_turn():
    end = apply_move_sequence(Pose2D(0.0, 0.0, 0.0), MoveSequence(math.pi / 2, 1.0, -math.pi / 2))
    assert end.x == pytest.approx(0.0, abs=1e-12)
    assert end.y == pytest.approx(1.0)
    assert end.yaw == pytest.approx(0.0, abs=1e-12)


def test_cell_bearing_and_distance():
    bearing, distance = cell_bearing_and_distance((10, 10), (10, 35), 0.04)
    assert bearing == pytest.approx(90.0)
    assert distance == pytest.approx(1.0)

    bearing, distance = cell_bearing_and_distance((0, 0), (-3, -4), 1.0)
    assert bearing == pytest.approx(math.degrees(math.atan2(-4, -3)))
    assert distance == pytest.approx(5.0)
