"""Dock Nav - Autonomous Navigation and Charger Docking for a Mobile Robot

Closed-loop navigation routines that turn noisy, asynchronous sensor streams
(wheel encoders, IMU orientation, beacon and fiducial poses, battery state)
into verified drive commands, and sequence them into multi-phase docking and
recipe-driven path following.

## Architecture Overview

The system is layered, each layer delegating to the one below it:

### Layer 1: Geometry (geometry.py)
Pose representation and frame math.
- Turn normalization to (-180°, 180°]
- Detector matrix to robot-frame pose conversion
- Move-sequence planning between two landmark observations
- Map cell bearing and distance

### Layer 2: Motion (motion.py)
Fire-and-confirm drive, turn and head commands verified from telemetry.
- Encoder reset and no-progress re-issue for drives
- Safety stops waited out, with the remaining distance re-issued
- Turn re-issue and heading-stability checks
- Refuses to move on stale telemetry

### Layer 3: Maneuvers (docking.py, fiducial.py, map_nav.py)
- Docking: search, align, turn away, back on, verify; strategy presets
- Fiducial alignment: reach a goal pose relative to a printed marker
- Map navigation: relocalize in a stored map and drive to a cell

### Layer 4: Path Following (recipe.py, follower.py)
Parses plain-text recipes and executes them in order, stopping at the first
failure with the hazard system suspended for the run.

## Modules

### Core
- `config.py` - Centralized configuration parameters with documentation
- `geometry.py` - Poses, transforms and move sequences
- `telemetry.py` - Versioned telemetry cells and beacon averaging
- `cancellation.py` - Cooperative abort token
- `errors.py` - Fault reasons and transport errors
- `motion.py` - Verified motion primitives
- `docking.py` - Docking state machine and presets
- `fiducial.py` - Fiducial marker alignment
- `map_nav.py` - Map relocalization and cell navigation
- `recipe.py` - Recipe commands and parser
- `follower.py` - Recipe execution

### Communication & Data
- `robot.py` - Abstract robot command interface
- `client.py` - WebSocket robot client and session runner
- `store.py` - Recipe and docking offset storage
- `data_collector.py` - CSV data logging for runs

### Visualization
- `plot_results.py` - CLI for recipe previews and run plots

## Quick Start

```bash
python -m dock_nav --recipe kitchen --dock-strategy compact
python -m dock_nav.plot_results recipe kitchen
```

## Author

Nishalan Govender

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"
__author__ = "Nishalan Govender"

# Export key classes for convenience
from .cancellation import AbortToken
from .data_collector import DataCollector
from .docking import DockingConfig, DockingController
from .fiducial import FiducialAligner
from .follower import PathFollower, PathResult
from .geometry import Pose2D, calculate_move_sequence
from .map_nav import MapNavigator
from .motion import MotionExecutor
from .telemetry import RobotTelemetry

__all__ = [
    "AbortToken",
    "DataCollector",
    "DockingConfig",
    "DockingController",
    "FiducialAligner",
    "MapNavigator",
    "MotionExecutor",
    "PathFollower",
    "PathResult",
    "Pose2D",
    "RobotTelemetry",
    "calculate_move_sequence",
]
