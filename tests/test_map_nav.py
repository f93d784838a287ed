import pytest

from dock_nav.errors import Fault
from dock_nav.geometry import Pose2D
from dock_nav.robot import EventType


@pytest.fixture
def map_sim(sim):
    sim.robot.pose = Pose2D(0.0, 0.0, 0.0)
    sim.robot.relocalize_after_turns = 2
    return sim


async def test_start_tracking_relocalizes_by_turning(map_sim):
    navigator = map_sim.navigator()

    assert await navigator.start_tracking("office")
    assert navigator.tracking
    assert map_sim.robot.calls("set_current_map") == [("office",)]
    assert len(map_sim.robot.calls("drive_arc")) == 2
    assert map_sim.robot.calls("request_slam_status")
    assert EventType.SELF_STATE in map_sim.robot.registered


async def test_move_to_goal_cell(map_sim):
    navigator = map_sim.navigator()
    assert await navigator.start_tracking("office")

    assert await navigator.move_to(25, 0, 90, 1)
    assert navigator.last_fault is None
    assert map_sim.robot.pose.x == pytest.approx(1.0, abs=0.01)
    assert map_sim.robot.pose.yaw_degrees == pytest.approx(90.0, abs=1.0)


async def test_lateral_error_is_nudged_out(map_sim):
    robot = map_sim.robot
    robot.pose = Pose2D(0.0, 0.2, 0.0)
    robot.drive_efficiency = 0.9
    navigator = map_sim.navigator()
    assert await navigator.start_tracking("office")

    assert await navigator.move_to(25, 0, 0, 0.2)
    assert len(robot.drives()) == 2
    assert abs(robot.pose.y) < 0.2 * 0.04


async def test_sensor_not_streaming(map_sim):
    map_sim.robot.slam_streaming = False
    navigator = map_sim.navigator()

    assert not await navigator.start_tracking("office")
    assert navigator.last_fault is Fault.SERVICE_UNAVAILABLE
    assert not navigator.tracking
    assert not map_sim.robot.tracking
    assert EventType.SLAM_STATUS not in map_sim.robot.registered


async def test_relocalization_turns_are_bounded(map_sim):
    map_sim.robot.relocalize_after_turns = 100
    navigator = map_sim.navigator(relocalize_turns=3, pose_wait=0.02)

    assert not await navigator.start_tracking("office")
    assert navigator.last_fault is Fault.PHASE_FAILURE
    assert len(map_sim.robot.calls("drive_arc")) == 3


async def test_move_requires_tracking(map_sim):
    navigator = map_sim.navigator()
    assert not await navigator.move_to(10, 10, 0, 1)
    assert navigator.last_fault is Fault.SERVICE_UNAVAILABLE
    assert map_sim.robot.calls("drive_arc") == []


async def test_cleanup_releases_map(map_sim):
    navigator = map_sim.navigator()
    assert await navigator.start_tracking("office")

    await navigator.cleanup()
    assert not navigator.tracking
    assert not map_sim.robot.tracking
    assert EventType.SELF_STATE not in map_sim.robot.registered
