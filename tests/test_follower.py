import pytest

from dock_nav.data_collector import DataCollector
from dock_nav.errors import Fault
from dock_nav.follower import PathFollower
from dock_nav.recipe import parse_recipe

from .conftest import Stubs

RECIPE = "DRIVE:1.0\nTURN:90\nDOCK\n"


def make_follower(stubs: Stubs, abort, **kwargs) -> PathFollower:
    kwargs.setdefault("warning_pause", 0.0)
    return PathFollower(stubs.motion, stubs.docker, stubs.aligner, stubs.navigator, abort, **kwargs)


async def test_executes_commands_in_order(abort):
    stubs = Stubs()
    result = await make_follower(stubs, abort).execute(parse_recipe(RECIPE))

    assert result.success
    assert stubs.actions() == [("drive", 1.0), ("turn", 90.0), ("dock",)]
    assert [step.success for step in result.steps] == [True, True, True]
    assert result.failed_step is None


async def test_stops_at_first_failure(abort):
    stubs = Stubs(fail={"turn"})
    result = await make_follower(stubs, abort).execute(parse_recipe(RECIPE))

    assert not result.success
    assert ("dock",) not in stubs.actions()
    assert result.failed_step.index == 1
    assert result.failed_step.fault is Fault.NO_EFFECT


async def test_hazard_system_suspended_for_whole_run(abort):
    stubs = Stubs(fail={"dock"})
    await make_follower(stubs, abort).execute(parse_recipe(RECIPE))

    assert stubs.calls[0] == ("hazard", "disabled")
    assert stubs.calls[-1] == ("hazard", "enabled")


async def test_empty_recipe_succeeds(abort):
    stubs = Stubs()
    result = await make_follower(stubs, abort).execute([])

    assert result.success
    assert result.steps == []


async def test_abort_before_start_fails_without_motion(abort):
    stubs = Stubs()
    follower = make_follower(stubs, abort)
    follower.abort()

    result = await follower.execute(parse_recipe(RECIPE))
    assert not result.success
    assert stubs.actions() == []


async def test_abort_during_step_marks_it_failed(abort):
    stubs = Stubs()

    async def delegate(argument: str) -> bool:
        abort.abort()
        return True

    follower = make_follower(stubs, abort, delegate=delegate)
    result = await follower.execute(parse_recipe("DELEGATE:stop\nDRIVE:1"))

    assert not result.success
    assert result.steps[0].fault is Fault.ABORTED
    assert ("drive", 1.0) not in stubs.actions()


async def test_delegate_receives_argument(abort):
    stubs = Stubs()
    received = []

    async def delegate(argument: str) -> bool:
        received.append(argument)
        return True

    result = await make_follower(stubs, abort, delegate=delegate).execute(parse_recipe("DELEGATE:wave hello"))
    assert result.success
    assert received == ["WAVE HELLO"]


async def test_delegate_exception_fails_step(abort):
    stubs = Stubs()

    async def delegate(argument: str) -> bool:
        raise RuntimeError("arm jammed")

    result = await make_follower(stubs, abort, delegate=delegate).execute(parse_recipe("DELEGATE:x\nDOCK"))
    assert not result.success
    assert result.steps[0].fault is Fault.PHASE_FAILURE
    assert stubs.actions() == []


async def test_missing_delegate_fails_step(abort):
    result = await make_follower(Stubs(), abort).execute(parse_recipe("DELEGATE:x"))
    assert not result.success
    assert result.failed_step.fault is Fault.PHASE_FAILURE


async def test_fiducial_and_map_commands_are_dispatched(abort):
    stubs = Stubs()
    commands = parse_recipe("ARTAG:16,150,7,0.5,0,0\nMAP:office\nMAPGOTO:10,20,90,2")
    result = await make_follower(stubs, abort).execute(commands)

    assert result.success
    align = stubs.actions()[0]
    assert align[:4] == ("align", 16, 150.0, 7)
    assert align[4].x == pytest.approx(0.5)
    assert stubs.actions()[1:] == [("map", "office"), ("mapgoto", 10.0, 20.0, 90.0, 2.0), ("map_cleanup",)]


async def test_map_released_when_later_step_fails(abort):
    stubs = Stubs(fail={"drive"})
    result = await make_follower(stubs, abort).execute(parse_recipe("MAP:office\nDRIVE:1"))

    assert not result.success
    assert stubs.actions()[-1] == ("map_cleanup",)


async def test_load_commands_speaks_warnings(abort):
    stubs = Stubs()
    follower = make_follower(stubs, abort)
    commands = await follower.load_commands("ARTAG:16,50,7,2.5,0,0\nDOCK")

    assert len(commands) == 2
    spoken = [c[1] for c in stubs.calls if c[0] == "speak"]
    assert len(spoken) == 2


async def test_result_is_recorded(abort, tmp_path):
    stubs = Stubs(fail={"dock"})
    with DataCollector(run_dir=str(tmp_path)) as collector:
        follower = make_follower(stubs, abort, data_collector=collector)
        await follower.execute(parse_recipe(RECIPE))

    lines = (tmp_path / "steps.csv").read_text().splitlines()
    assert lines[0] == "timestamp,index,command,success,fault,elapsed"
    assert len(lines) == 4
    assert lines[3].split(",")[2:5] == ["DOCK", "0", "phase_failure"]
    assert (tmp_path / "result.txt").read_text().splitlines() == ["failure", "3"]


async def test_real_motion_restores_hazard_system(sim):
    follower = PathFollower(
        sim.motion, sim.docker(), sim.aligner(), sim.navigator(), sim.abort, warning_pause=0.0
    )
    result = await follower.execute(parse_recipe("DRIVE:0.3\nTURN:90"))

    assert result.success
    assert sim.robot.hazard_settings == [(True, True), (False, False)]
    assert sim.robot.pose.x == pytest.approx(0.7)
