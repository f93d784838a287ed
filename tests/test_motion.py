import asyncio
import math
import time

import pytest

from dock_nav.errors import Fault
from dock_nav.motion import MotionExecutor
from dock_nav.robot import EventType
from dock_nav.telemetry import RobotTelemetry

from .conftest import FakeRobot, fast_motion_settings


async def test_drive_moves_robot_along_heading(sim):
    assert await sim.motion.drive(0.5)
    assert sim.robot.pose.x == pytest.approx(0.5)
    assert sim.motion.last_fault is None
    heading, distance, _, reverse = sim.robot.drives()[0]
    assert heading == pytest.approx(180.0)
    assert distance == pytest.approx(0.5)
    assert not reverse


async def test_drive_backward_uses_reverse_flag(sim):
    assert await sim.motion.drive(-0.3)
    assert sim.robot.drives()[0][3] is True
    assert sim.robot.pose.x == pytest.approx(1.3)


async def test_tiny_drive_is_skipped(sim):
    assert await sim.motion.drive(0.001)
    assert sim.robot.calls("drive_heading") == []


async def test_dropped_drive_is_reissued(sim):
    sim.robot.ignore_drives = 2
    assert await sim.motion.drive(0.5)
    assert len(sim.robot.drives()) == 3
    assert sim.robot.pose.x == pytest.approx(0.5)


async def test_drive_with_no_effect_fails_after_retries(sim):
    sim.robot.ignore_drives = 100
    assert not await sim.motion.drive(0.5)
    assert sim.motion.last_fault is Fault.NO_EFFECT
    assert len(sim.robot.drives()) == 6


async def test_drive_resumes_after_safety_stop(sim):
    sim.robot.hazard_distance = 0.2
    assert await sim.motion.drive(0.5)
    drives = sim.robot.drives()
    assert len(drives) == 2
    assert drives[1][1] == pytest.approx(0.3)
    assert sim.robot.pose.x == pytest.approx(0.5)


async def test_drive_abort_returns_promptly(sim):
    sim.motion.settings = fast_motion_settings(drive_settle_wait=5.0)
    asyncio.get_running_loop().call_later(0.05, sim.abort.abort)
    start = time.monotonic()
    assert not await sim.motion.drive(0.5)
    assert time.monotonic() - start < 1.0
    assert sim.motion.last_fault is Fault.ABORTED


async def test_drive_refused_without_telemetry(telemetry, abort):
    robot = FakeRobot(telemetry)
    motion = MotionExecutor(robot, telemetry, abort, fast_motion_settings())
    assert not await motion.drive(0.5)
    assert motion.last_fault is Fault.TELEMETRY_STALE
    assert robot.calls("drive_heading") == []
    assert robot.spoken


async def test_wait_for_telemetry(sim, abort):
    assert await sim.motion.wait_for_telemetry(1.0)

    quiet = RobotTelemetry()
    idle = MotionExecutor(FakeRobot(quiet), quiet, abort, fast_motion_settings())
    assert not await idle.wait_for_telemetry(0.05)
    assert idle.last_fault is Fault.TELEMETRY_STALE


def test_durations_scale_with_request(telemetry, abort):
    motion = MotionExecutor(FakeRobot(telemetry), telemetry, abort)
    assert motion.drive_duration_ms(0.5) == 2000
    assert motion.drive_duration_ms(-0.5, slow=True) == 6000
    assert motion.turn_duration_ms(90) > motion.turn_duration_ms(10)


async def test_turn_reaches_requested_heading(sim):
    assert await sim.motion.turn(90)
    assert sim.robot.pose.yaw_degrees == pytest.approx(-90.0)
    assert len(sim.robot.calls("drive_arc")) == 1
    assert sim.robot.calls("drive_arc")[0][0] == pytest.approx(-90.0)


async def test_turn_is_normalized_before_issuing(sim):
    assert await sim.motion.turn(-270)
    assert sim.robot.pose.yaw_degrees == pytest.approx(-90.0)


async def test_small_turn_is_skipped(sim):
    assert await sim.motion.turn(1.0)
    assert sim.robot.calls("drive_arc") == []


async def test_turn_without_movement_fails(sim):
    sim.robot.ignore_turns = 100
    assert not await sim.motion.turn(90)
    assert sim.motion.last_fault is Fault.NO_EFFECT
    assert len(sim.robot.calls("drive_arc")) == 4


async def test_dropped_turn_is_reissued(sim):
    sim.robot.ignore_turns = 1
    assert await sim.motion.turn(45)
    assert len(sim.robot.calls("drive_arc")) == 2


async def test_short_turn_fails_tolerance(sim):
    sim.robot.turn_efficiency = 0.8
    assert not await sim.motion.turn(90)
    assert sim.motion.last_fault is Fault.TOLERANCE_EXCEEDED


async def test_command_error_becomes_fault(sim):
    sim.robot.fail_commands.add("drive_arc")
    assert not await sim.motion.turn(90)
    assert sim.motion.last_fault is Fault.COMMAND_ERROR


async def test_move_head_confirms_pitch(sim):
    assert await sim.motion.move_head(20.0)
    assert sim.robot.head_pitch == 20.0
    assert EventType.ACTUATOR not in sim.robot.registered


async def test_stuck_head_fails_and_unsubscribes(sim):
    sim.robot.head_stuck = True
    assert not await sim.motion.move_head(20.0)
    assert sim.motion.last_fault is Fault.NO_EFFECT
    assert len(sim.robot.calls("move_head")) == 3
    assert EventType.ACTUATOR not in sim.robot.registered


async def test_hazard_suspended_restores_on_error(sim):
    with pytest.raises(RuntimeError):
        async with sim.motion.hazard_suspended():
            assert sim.robot.hazard_settings == [(True, True)]
            raise RuntimeError("boom")
    assert sim.robot.hazard_settings == [(True, True), (False, False)]


async def test_turn_then_drive_composes(sim):
    # Face +y, then drive one meter
    assert await sim.motion.turn(-90)
    assert await sim.motion.drive(1.0)
    assert sim.robot.pose.x == pytest.approx(1.0)
    assert sim.robot.pose.y == pytest.approx(1.0)
    assert sim.robot.pose.yaw == pytest.approx(math.pi / 2)

