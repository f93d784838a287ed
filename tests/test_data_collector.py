import csv

import pytest

from dock_nav.data_collector import DataCollector
from dock_nav.errors import Fault
from dock_nav.telemetry import KinematicState


def read_rows(path):
    with open(path, newline="") as f:
        return list(csv.DictReader(f))


def test_timestamped_run_directory(tmp_path, monkeypatch):
    monkeypatch.delenv("RUN_DIR", raising=False)
    collector = DataCollector(output_dir=str(tmp_path))
    assert collector.run_dir.parent == tmp_path / "results"
    assert collector.run_dir.name.startswith("run_")


def test_run_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("RUN_DIR", str(tmp_path / "custom"))
    assert DataCollector().run_dir == tmp_path / "custom"


def test_file_output_dir_is_rejected(tmp_path):
    target = tmp_path / "file"
    target.write_text("")
    with pytest.raises(ValueError):
        DataCollector(output_dir=str(target))


def test_logs_steps_motion_and_docking(tmp_path):
    state = KinematicState(yaw=90.0, roll=0.5, pitch=-1.0, left_distance=0.3, imu_age=0.0, encoder_age=0.0)
    with DataCollector(run_dir=str(tmp_path)) as collector:
        collector.log_step(0, "DRIVE:0.3", True, None, 1.25)
        collector.log_motion("drive", 0.3, state, True, None)
        collector.log_motion("turn", 90.0, state, False, Fault.TOLERANCE_EXCEEDED)
        collector.log_docking(1, "searching", "strategy wedge")
        collector.log_result(True, 1)

    steps = read_rows(tmp_path / "steps.csv")
    assert steps[0]["command"] == "DRIVE:0.3"
    assert steps[0]["success"] == "1"
    assert steps[0]["elapsed"] == "1.250"

    motion = read_rows(tmp_path / "motion.csv")
    assert [row["kind"] for row in motion] == ["drive", "turn"]
    assert motion[1]["fault"] == "tolerance_exceeded"
    assert float(motion[0]["yaw"]) == 90.0

    docking = read_rows(tmp_path / "docking.csv")
    assert docking[0]["state"] == "searching"
    assert (tmp_path / "result.txt").read_text() == "success\n1\n"


def test_logging_before_setup_is_ignored(tmp_path):
    collector = DataCollector(run_dir=str(tmp_path))
    collector.log_step(0, "DOCK", False, Fault.ABORTED, 0.0)
    assert not (tmp_path / "steps.csv").exists()
