"""Recipe language for the path follower.

A recipe is plain text with one command per line::

    # comment
    DRIVE:<meters>
    TURN:<degrees>
    ARTAG:<dictionary>,<size_mm>,<marker_id>,<x>,<y>,<yaw_degrees>
    DELEGATE:<argument>
    DOCK
    MAP:<map_name>
    MAPGOTO:<cell_x>,<cell_y>,<yaw_degrees>,<tolerance_cells>

Command names are case-insensitive. Lines that do not parse are skipped with
a debug log entry; they never abort loading.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Union

from .config import FIDUCIAL_SIZE_WARNING
from .geometry import Pose2D
from .store import DataStore


@dataclass(frozen=True)
class DriveCommand:
    meters: float

    def to_recipe(self) -> str:
        return f"DRIVE:{self.meters:g}"

    def __str__(self) -> str:
        return self.to_recipe()


@dataclass(frozen=True)
class TurnCommand:
    degrees: float

    def to_recipe(self) -> str:
        return f"TURN:{self.degrees:g}"

    def __str__(self) -> str:
        return self.to_recipe()


@dataclass(frozen=True)
class FiducialAlignCommand:
    """Align so that a marker is observed at (x, y, yaw_degrees).

    Attributes:
        dictionary: Marker dictionary identifier.
        size: Printed marker edge length (millimetres).
        marker_id: Marker to align with.
        x: Goal forward distance to the marker (meters).
        y: Goal lateral offset of the marker, left positive (meters).
        yaw_degrees: Goal marker yaw; 0 means square on.
    """

    dictionary: int
    size: float
    marker_id: int
    x: float
    y: float
    yaw_degrees: float

    @property
    def goal_pose(self) -> Pose2D:
        return Pose2D.from_degrees(self.x, self.y, self.yaw_degrees)

    def to_recipe(self) -> str:
        return (
            f"ARTAG:{self.dictionary},{self.size:g},{self.marker_id},"
            f"{self.x:g},{self.y:g},{self.yaw_degrees:g}"
        )

    def __str__(self) -> str:
        return self.to_recipe()


@dataclass(frozen=True)
class DelegateCommand:
    argument: str

    def to_recipe(self) -> str:
        return f"DELEGATE:{self.argument}"

    def __str__(self) -> str:
        return self.to_recipe()


@dataclass(frozen=True)
class DockCommand:
    def to_recipe(self) -> str:
        return "DOCK"

    def __str__(self) -> str:
        return self.to_recipe()


@dataclass(frozen=True)
class MapLoadCommand:
    map_name: str

    def to_recipe(self) -> str:
        return f"MAP:{self.map_name}"

    def __str__(self) -> str:
        return self.to_recipe()


@dataclass(frozen=True)
class MapMoveCommand:
    """Drive to a map cell and heading; tolerance is in cells."""

    x: float
    y: float
    yaw_degrees: float
    tolerance: float

    def to_recipe(self) -> str:
        return f"MAPGOTO:{self.x:g},{self.y:g},{self.yaw_degrees:g},{self.tolerance:g}"

    def __str__(self) -> str:
        return self.to_recipe()


PathCommand = Union[
    DriveCommand,
    TurnCommand,
    FiducialAlignCommand,
    DelegateCommand,
    DockCommand,
    MapLoadCommand,
    MapMoveCommand,
]


def _floats(args: str, count: int) -> List[float]:
    parts = [p.strip() for p in args.split(",")]
    if len(parts) != count:
        raise ValueError(f"expected {count} values, got {len(parts)}")
    values = [float(p) for p in parts]
    if not all(math.isfinite(v) for v in values):
        raise ValueError("non-finite value")
    return values


def _whole(value: float) -> int:
    if not value.is_integer():
        raise ValueError(f"{value} is not an integer")
    return int(value)


def parse_line(line: str) -> Optional[PathCommand]:
    """Parse one recipe line.

    Args:
        line: Raw line, surrounding whitespace allowed.

    Returns:
        The command, or None for blank lines, comments and lines that do not
        parse.
    """
    text = line.strip()
    if len(text) <= 1 or text.startswith("#"):
        return None

    name, sep, args = text.partition(":")
    name = name.strip().upper()
    args = args.strip()

    try:
        if name == "DOCK":
            if args:
                raise ValueError("DOCK takes no arguments")
            return DockCommand()
        if not sep:
            raise ValueError("missing ':'")
        if name == "DRIVE":
            return DriveCommand(*_floats(args, 1))
        if name == "TURN":
            return TurnCommand(*_floats(args, 1))
        if name == "ARTAG":
            dictionary, size, marker_id, x, y, yaw = _floats(args, 6)
            return FiducialAlignCommand(_whole(dictionary), size, _whole(marker_id), x, y, yaw)
        if name == "DELEGATE":
            return DelegateCommand(args.upper())
        if name == "MAP":
            if not args:
                raise ValueError("missing map name")
            return MapLoadCommand(args)
        if name == "MAPGOTO":
            x, y, yaw, tolerance = _floats(args, 4)
            if tolerance < 0:
                raise ValueError("negative tolerance")
            return MapMoveCommand(x, y, yaw, tolerance)
    except ValueError as e:
        logging.debug(f"Skipping recipe line {text!r}: {e}")
        return None

    logging.debug(f"Skipping unknown recipe command {text!r}")
    return None


def parse_recipe(text: str) -> List[PathCommand]:
    """Parse recipe text into commands, skipping lines that do not parse."""
    commands = []
    for line in text.splitlines():
        command = parse_line(line)
        if command is not None:
            commands.append(command)
    return commands


def recipe_warnings(commands: List[PathCommand]) -> List[str]:
    """Spoken warnings for marker alignments that are unlikely to succeed."""
    warnings = []
    for command in commands:
        if not isinstance(command, FiducialAlignCommand):
            continue
        if command.size < FIDUCIAL_SIZE_WARNING and command.x > 1:
            warnings.append(
                f"Warning. You are expecting to align to a tag of size {command.size:g} "
                f"at over one meter away. This is not a reliable operation."
            )
        if command.x > 2:
            warnings.append(
                "Warning. You are expecting to align to a tag that is over two meters away. "
                "This is not a reliable operation."
            )
    return warnings


def load_recipe(store: DataStore, name: str) -> List[PathCommand]:
    """Read and parse a named recipe from the data store.

    Raises:
        FileNotFoundError: If the recipe does not exist.
    """
    commands = parse_recipe(store.load_recipe_text(name))
    logging.info(f"Loaded {len(commands)} commands from recipe {name}")
    return commands
