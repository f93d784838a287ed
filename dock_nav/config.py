"""Configuration parameters for the navigation and docking core.

This module centralizes all configuration parameters including:
- Motion primitive thresholds, timings and retry bounds
- Docking presets (tolerances, sweeps, recovery)
- Fiducial alignment tolerances
- Map navigation parameters
- WebSocket connection parameters
- Terminal and plot colors

All parameters are documented with their purpose and tuning rationale.
Component settings dataclasses take their defaults from here; tests shrink
the timing values instead of patching this module.
"""

# ============================================================================
# Telemetry
# ============================================================================

TELEMETRY_TIMEOUT = 1.0
"""Maximum age of an encoder or IMU sample before motion is refused (seconds).

The robot streams both feeds at well above 1 Hz, so a one second gap means
the feed has stalled rather than merely jittered.
"""

TELEMETRY_STARTUP_TIMEOUT = 15.0
"""How long a session waits for the first encoder and IMU samples (seconds)."""

BEACON_WINDOW_SIZE = 5
"""Capacity of the sliding window used to average beacon pose samples.

Five samples at the detector's ~5 Hz rate is about one second of history:
enough to smooth jitter without lagging a turning robot too far.
"""


# ============================================================================
# Motion Executor - Drive
# ============================================================================

MIN_DRIVE_DISTANCE = 0.003
"""Drives shorter than this are skipped and reported as success (meters).

The drive train cannot resolve moves of a few millimetres reliably.
"""

DRIVE_BASE_DURATION_MS = 500
"""Fixed part of the drive command duration (milliseconds)."""

DRIVE_MS_PER_METER = 3000
"""Drive command duration per meter of travel (milliseconds)."""

DRIVE_SLOW_FACTOR = 3
"""Duration multiplier for slow drives (backing onto the dock, fine corrections)."""

DRIVE_COMPLETION_RATIO = 0.99
"""Drive completes once this fraction of the requested distance is covered."""

DRIVE_COMPLETION_TOLERANCE = 0.1
"""Drive also completes when within this absolute distance of target (meters).

Generous on purpose: the encoder reports the left wheel only, which reads
short on curved tracks. Drives that need precision use fiducial feedback.
"""

ENCODER_RESET_RETRIES = 10
"""Attempts at zeroing the encoder before a drive is abandoned."""

ENCODER_RESET_WAIT = 0.5
"""Wait after each encoder reset command (seconds)."""

ENCODER_RESET_DURATION_MS = 100
"""Duration of the zero-velocity command used to reset the encoder (milliseconds)."""

DRIVE_SETTLE_WAIT = 1.0
"""Wait after issuing a drive command before the first poll (seconds)."""

DRIVE_POLL_INTERVAL = 1.5
"""Interval between encoder polls while driving (seconds)."""

DRIVE_NO_PROGRESS_RETRIES = 5
"""Re-issues of a drive command that produced no encoder movement."""

DRIVE_TIMEOUT_MARGIN = 5.0
"""Fixed slack added to the drive timeout (seconds)."""

DRIVE_TIMEOUT_FACTOR = 2.0
"""Drive timeout multiple of the commanded duration."""

HAZARD_WAIT_POLLS = 30
"""Polls spent waiting for a safety stop to clear before a drive fails."""

HAZARD_POLL_INTERVAL = 1.0
"""Interval between safety-stop polls (seconds)."""


# ============================================================================
# Motion Executor - Turn
# ============================================================================

MIN_TURN_DEGREES = 2.0
"""Turns smaller than this are skipped and reported as success (degrees)."""

TURN_BASE_DURATION_MS = 500
"""Fixed part of the turn command duration (milliseconds)."""

TURN_MS_PER_90_DEGREES = 4000
"""Turn command duration per quarter turn (milliseconds)."""

TURN_VERIFY_THRESHOLD = 3.0
"""Turns larger than this are checked for movement and re-issued (degrees)."""

TURN_MIN_MOVEMENT = 1.0
"""Heading change below which a turn command is considered ignored (degrees)."""

TURN_REISSUE_RETRIES = 3
"""Re-issues of a turn command that produced no heading change."""

TURN_SETTLE_WAIT = 2.0
"""Wait after issuing a turn command before the first check (seconds)."""

TURN_STABLE_THRESHOLD = 1.0
"""Heading change per poll below which the robot is considered stopped (degrees)."""

TURN_STABLE_POLL_INTERVAL = 0.5
"""Interval between heading stability polls (seconds)."""

TURN_STABLE_MAX_POLLS = 25
"""Maximum heading stability polls before the turn is evaluated anyway."""

TURN_FINAL_PAD = 0.25
"""Extra wait after the heading stabilizes (seconds)."""

TURN_TOLERANCE = 5.0
"""Maximum discrepancy between requested and measured turn (degrees)."""


# ============================================================================
# Motion Executor - Head
# ============================================================================

HEAD_TOLERANCE = 3.0
"""Head pitch is confirmed once within this many degrees of target."""

HEAD_RETRIES = 3
"""Head move attempts before giving up on confirmation."""

HEAD_MOVE_WAIT = 3.0
"""Wait after each head command (seconds)."""

HEAD_VELOCITY = 60
"""Head actuator velocity passed with each head command (degrees per second)."""


# ============================================================================
# Docking Controller
# ============================================================================

DOCK_MAX_RETRIES = 3
"""Whole docking attempts before giving up."""

DOCK_ALIGN_MAX_RETRIES = 10
"""Alignment corrections per docking attempt."""

DOCK_ALIGNED_X = 0.03
"""Lateral tolerance for the aligned state (meters)."""

DOCK_ALIGNED_YAW = 3.0
"""Relative yaw tolerance for the aligned state (degrees)."""

DOCK_CENTER_OFFSET = 0.04
"""Beacon offset from the dock's guide rail centre (meters)."""

DOCK_MIN_CORRECTIVE_TURN = 3.0
"""Smallest corrective turn issued while facing the beacon (degrees).

Anything below the motion executor's minimum turn would be skipped silently.
"""

DOCK_IDEAL_DISTANCE = 1.0
"""Distance from the beacon at which the final alignment is made (meters)."""

DOCK_DISTANCE_TOLERANCE = 0.1
"""Distance error from the ideal before an approach or retreat is driven (meters)."""

DOCK_INITIAL_ROTATION = 35.0
"""First rotation of the beacon search, before the sweep starts (degrees)."""

DOCK_SWEEP_STEP = 10.0
"""Rotation between beacon looks during a sweep (degrees)."""

DOCK_OVERSHOOT = 0.2
"""Extra distance driven backward onto the dock (meters)."""

DOCK_WEDGE_ROLL = 5.0
"""Roll above which the robot is assumed to sit on the misalignment ramp (degrees)."""

DOCK_WEDGE_PITCH = 5.0
"""Pitch above which the robot is assumed to sit on the misalignment ramp (degrees)."""

DOCK_CHARGE_WAIT = 7.0
"""Wait for the charging signal after the final nudge (seconds).

The battery state event updates slowly; shorter waits miss real docks.
"""

DOCK_BEACON_WAIT = 3.0
"""Pause before the first beacon look, and after each sweep step (seconds)."""

DOCK_LOOK_WAIT = 1.5
"""Longest wait for the beacon window to refill after a turn (seconds)."""

DOCK_BEACON_DEBOUNCE_MS = 100
"""Debounce requested for charger pose events (milliseconds).

At this rate the beacon window fills in about half a second.
"""

DOCK_DETECTOR_RESTARTS = 3
"""Restarts of the beacon detector service before docking is abandoned."""

DOCK_DETECTOR_RESTART_WAIT = 5.0
"""Wait after restarting the detector service (seconds)."""

DOCK_WALL_DISTANCE = 1.0
"""Distance kept from the wall behind the dock when repositioning after a failed sweep (meters)."""

DOCK_DETECTOR_START_WAIT = 3.0
"""Wait after starting the beacon detector before checking its status (seconds)."""

DOCK_CHARGE_POLL_INTERVAL = 0.25
"""Interval between charging-state checks (seconds)."""


# ============================================================================
# Fiducial Aligner
# ============================================================================

FIDUCIAL_TOLERANCE_X = 0.05
"""Forward tolerance for fiducial alignment (meters)."""

FIDUCIAL_TOLERANCE_Y = 0.03
"""Lateral tolerance for fiducial alignment (meters)."""

FIDUCIAL_TOLERANCE_YAW = 3.0
"""Yaw tolerance for fiducial alignment (degrees)."""

FIDUCIAL_MAX_CORRECTIONS = 6
"""Correction iterations before fiducial alignment fails."""

FIDUCIAL_INITIAL_TIMEOUT = 10.0
"""Time allowed for the first burst of marker readings (seconds)."""

FIDUCIAL_INITIAL_READINGS = 2
"""Consecutive marker readings required before the first correction."""

FIDUCIAL_SWEEP_FIRST_TURN = 20.0
"""Turn made before the marker search sweep (degrees)."""

FIDUCIAL_SWEEP_STEP = -10.0
"""Turn between marker looks during the search sweep (degrees)."""

FIDUCIAL_SWEEP_LOOKS = 6
"""Marker looks made during the search sweep."""

FIDUCIAL_LOOK_TIMEOUT = 1.0
"""Time allowed for a marker reading during the sweep (seconds)."""

FIDUCIAL_SIZE_WARNING = 100
"""Markers smaller than this (millimetres) are hard to see past one meter."""


# ============================================================================
# Map Navigator
# ============================================================================

MAP_CELL_SIZE = 0.04
"""Edge length of one occupancy map cell (meters)."""

MAP_RELOCALIZE_TURNS = 40
"""Corrective turns tried while waiting for the tracker to relocalize."""

MAP_RELOCALIZE_STEP = 10.0
"""Size of each relocalization turn (degrees)."""

MAP_TRACKING_WAIT = 4.0
"""Wait after starting or stopping the tracker (seconds)."""

MAP_FINE_TURN_TOLERANCE = 1.0
"""Goal yaw tolerance of the fine turn loop (degrees)."""

MAP_FINE_TURN_MINIMUM = 3.0
"""Smallest turn issued by the fine turn loop (degrees)."""

MAP_LOOP_LIMIT = 10
"""Iterations allowed for the fine turn and lateral nudge loops."""


# ============================================================================
# Recipes and Data
# ============================================================================

DATA_DIR = "data"
"""Default root of the data store (recipes, docking offsets)."""

RECIPE_SUFFIX = ".txt"
"""File suffix of recipes in the data store."""

DOCKING_OFFSETS_FILE = "DockingOffsets.txt"
"""Per-robot docking corrections file in the data store."""

RECIPE_WARNING_PAUSE = 6.0
"""Pause after a spoken recipe warning so an operator can abort (seconds)."""


# ============================================================================
# Visualization Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary plot color - measured motion, executed path."""

PLOT_BLUE = "#2374f7"
"""Secondary plot color - requested motion, planned path."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for guides, grids, and secondary elements."""

TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for warnings that need operator attention."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for progress messages."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# WebSocket Configuration
# ============================================================================

WS_URI = "ws://localhost:8765"
"""WebSocket URI of the robot bridge."""

WS_RETRY_DELAY_SECONDS = 1
"""Initial retry delay for failed WebSocket connections (seconds)."""

WS_MAX_RETRY_DELAY_SECONDS = 60
"""Maximum retry delay with exponential backoff (seconds)."""

WS_TIMEOUT_SECONDS = 5.0
"""Timeout for WebSocket message reception (seconds)."""
