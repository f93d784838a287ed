#!/usr/bin/env python3
"""
WebSocket Robot Client and Path-Following Session Runner

This module provides a WebSocket client that connects to the robot bridge,
sends robot commands as JSON, and routes the robot's event stream (encoders,
IMU, beacon and marker poses, battery, head actuator, range, hazards and map
status) into the telemetry hub. It also wires up a complete path-following
session: load a recipe, confirm telemetry is live, execute every command,
and save run data to CSV files.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

import websockets

from dock_nav.cancellation import AbortToken
from dock_nav.config import (
    DATA_DIR,
    TELEMETRY_STARTUP_TIMEOUT,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
    WS_MAX_RETRY_DELAY_SECONDS,
    WS_RETRY_DELAY_SECONDS,
    WS_TIMEOUT_SECONDS,
    WS_URI,
)
from dock_nav.data_collector import DataCollector
from dock_nav.docking import DOCKING_PRESETS, DockingController
from dock_nav.errors import RobotCommandError
from dock_nav.fiducial import FiducialAligner
from dock_nav.follower import PathFollower
from dock_nav.geometry import Pose2D, beacon_sample_from_matrix, convert_detector_pose
from dock_nav.map_nav import MapNavigator
from dock_nav.motion import MotionExecutor
from dock_nav.robot import EventType, RobotInterface
from dock_nav.store import DataStore
from dock_nav.telemetry import FiducialSample, RobotTelemetry, SlamStatus


class CustomFormatter(logging.Formatter):
    """Custom logging formatter that removes timestamps from INFO messages.

    This formatter provides clean console output by showing INFO messages without
    timestamps while preserving full context for WARNING, ERROR, and DEBUG messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


class WebSocketRobot(RobotInterface):
    """Robot interface over a JSON WebSocket bridge.

    Outgoing commands are ``{"message_type": "command", "command": ..., "args": {...}}``.
    Incoming events are ``{"message_type": "event", "event_type": ..., "data": {...}}``
    and are written into the telemetry hub as they arrive.

    Attributes:
        uri: WebSocket URI of the robot bridge.
        telemetry: Telemetry hub receiving routed events.
        should_stop: Flag indicating whether to stop the receive loop.
    """

    def __init__(self, uri: str, telemetry: RobotTelemetry) -> None:
        """Initialize the client.

        Args:
            uri: WebSocket URI to connect to (must start with ws:// or wss://).
            telemetry: Telemetry hub to feed.

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")

        self.uri: str = uri
        self.telemetry = telemetry
        self.should_stop: bool = False
        self._websocket: Optional[Any] = None
        self._connected = asyncio.Event()

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    async def wait_connected(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Incoming events
    # ------------------------------------------------------------------

    def route_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write one event's payload into the matching telemetry cell.

        Args:
            event_type: ``EventType`` value of the event.
            data: Event payload.
        """
        event = EventType(event_type)
        t = self.telemetry

        if event is EventType.ENCODER:
            t.on_encoder(float(data["left_distance"]))
        elif event is EventType.IMU:
            t.on_imu(float(data["yaw"]), float(data["roll"]), float(data["pitch"]))
        elif event is EventType.CHARGER_POSE:
            t.on_charger_pose(beacon_sample_from_matrix(data["homogeneous_matrix"]))
        elif event is EventType.FIDUCIAL:
            pose = convert_detector_pose(data["homogeneous_matrix"])
            t.on_fiducial(FiducialSample(int(data["marker_id"]), pose))
        elif event is EventType.BATTERY:
            t.on_battery(bool(data["is_charging"]))
        elif event is EventType.ACTUATOR:
            t.on_actuator(float(data["pitch"]), float(data.get("roll", 0.0)), float(data.get("yaw", 0.0)))
        elif event is EventType.TIME_OF_FLIGHT:
            # Center sensor preferred; the side sensors stand in when it has no reading
            for sensor in ("front_center", "front_left", "front_right"):
                if data.get(sensor) is not None:
                    t.on_tof(float(data[sensor]))
                    break
        elif event is EventType.HAZARD:
            t.on_hazard(bool(data["stop_active"]))
        elif event is EventType.SLAM_STATUS:
            t.on_slam_status(
                SlamStatus(
                    sensor_status=str(data.get("sensor_status", "")),
                    run_mode=str(data.get("run_mode", "")),
                    status_list=[str(s) for s in data.get("status_list", [])],
                )
            )
        elif event is EventType.SELF_STATE:
            t.on_self_state(
                Pose2D.from_degrees(float(data["map_x"]), float(data["map_y"]), float(data["map_yaw"]))
            )

    def parse_and_route_message(self, message: Union[str, bytes]) -> None:
        """Parse incoming message and route to appropriate handler.

        Args:
            message: Raw JSON message string or bytes from WebSocket.
        """
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            data = json.loads(message)

            message_type = data.get("message_type")
            if message_type == "event":
                self.route_event(data["event_type"], data.get("data", {}))
            elif message_type == "error":
                logging.warning(f"Robot reported error: {data.get('message', data)}")
            else:
                logging.debug(f"\nReceived unknown message: {json.dumps(data, indent=2)}\n")

        except json.JSONDecodeError as e:
            logging.error(f"Error parsing JSON: {e}")
        except (KeyError, TypeError, ValueError) as e:
            logging.error(f"Error processing message data: {e}")

    async def run(self) -> None:
        """Connect and receive events until stopped.

        Maintains a connection to the robot bridge with automatic retry logic
        and exponential backoff.
        """
        retry_delay = WS_RETRY_DELAY_SECONDS

        while not self.should_stop:
            try:
                async with websockets.connect(self.uri) as websocket:
                    logging.info(f"{TERM_BLUE}✓ Connected to robot at {self.uri}{TERM_RESET}")
                    self._websocket = websocket
                    self._connected.set()
                    retry_delay = WS_RETRY_DELAY_SECONDS

                    while not self.should_stop:
                        try:
                            message = await asyncio.wait_for(websocket.recv(), timeout=WS_TIMEOUT_SECONDS)
                        except asyncio.TimeoutError:
                            continue
                        except websockets.exceptions.ConnectionClosed:
                            logging.warning("Connection closed by robot")
                            break
                        self.parse_and_route_message(message)

            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
                if self.should_stop:
                    break
                logging.error(f"Connection error: {e}")
            finally:
                self._websocket = None
                self._connected.clear()

            if not self.should_stop:
                logging.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, WS_MAX_RETRY_DELAY_SECONDS)

    def stop(self) -> None:
        """Signal the receive loop to stop."""
        self.should_stop = True

    # ------------------------------------------------------------------
    # Outgoing commands
    # ------------------------------------------------------------------

    async def send_command(self, command: str, **args: Any) -> None:
        """Send one command to the robot.

        Raises:
            RobotCommandError: If not connected or the connection drops mid-send.
        """
        websocket = self._websocket
        if websocket is None:
            raise RobotCommandError(command, "not connected")
        message = json.dumps({"message_type": "command", "command": command, "args": args})
        try:
            await websocket.send(message)
        except websockets.exceptions.ConnectionClosed as e:
            raise RobotCommandError(command, f"connection closed ({e})") from e
        logging.debug(f"Sent command: {command} {args}")

    async def drive_heading(self, heading: float, distance: float, time_ms: int, reverse: bool = False) -> None:
        await self.send_command("DriveHeading", heading=heading, distance=distance, time_ms=time_ms, reverse=reverse)

    async def drive_arc(self, heading: float, radius: float, time_ms: int, reverse: bool = False) -> None:
        await self.send_command("DriveArc", heading=heading, radius=radius, time_ms=time_ms, reverse=reverse)

    async def move_head(self, pitch: float, roll: float, yaw: float, velocity: float) -> None:
        await self.send_command("MoveHead", pitch=pitch, roll=roll, yaw=yaw, velocity=velocity)

    async def update_hazard_settings(self, disable_bump: bool, disable_time_of_flight: bool) -> None:
        await self.send_command(
            "UpdateHazardSettings", disable_bump=disable_bump, disable_time_of_flight=disable_time_of_flight
        )

    async def start_locating_docking_station(self) -> None:
        await self.send_command("StartLocatingDockingStation")

    async def stop_locating_docking_station(self) -> None:
        await self.send_command("StopLocatingDockingStation")

    async def restart_slam_service(self) -> None:
        await self.send_command("SlamServiceRestart")

    async def start_fiducial_detector(self, dictionary: int, marker_size: float) -> None:
        await self.send_command("StartArTagDetector", dictionary=dictionary, size=marker_size)

    async def stop_fiducial_detector(self) -> None:
        await self.send_command("StopArTagDetector")

    async def set_current_map(self, map_name: str) -> None:
        await self.send_command("SetCurrentSlamMap", map_name=map_name)

    async def start_tracking(self) -> None:
        await self.send_command("StartTracking")

    async def stop_tracking(self) -> None:
        await self.send_command("StopTracking")

    async def request_map(self) -> None:
        await self.send_command("GetMap")

    async def request_slam_status(self) -> None:
        await self.send_command("GetSlamStatus")

    async def speak(self, text: str) -> None:
        await self.send_command("Speak", text=text)

    async def register_event(
        self, event: EventType, debounce_ms: int = 0, filters: Optional[Dict[str, Any]] = None
    ) -> None:
        await self.send_command(
            "RegisterEvent", event_type=event.value, debounce_ms=debounce_ms, filters=filters or {}
        )

    async def unregister_event(self, event: EventType) -> None:
        await self.send_command("UnregisterEvent", event_type=event.value)


async def run_session(
    robot: RobotInterface,
    telemetry: RobotTelemetry,
    store: DataStore,
    recipe: str,
    abort: AbortToken,
    dock_strategy: str = "wedge",
    data_collector: Optional[DataCollector] = None,
    startup_timeout: float = TELEMETRY_STARTUP_TIMEOUT,
) -> bool:
    """Run one recipe end to end on a connected robot.

    Args:
        robot: Connected robot interface.
        telemetry: Telemetry hub fed by the robot.
        store: Data store holding the recipe and docking offsets.
        recipe: Recipe name.
        abort: Cancellation token shared by every component.
        dock_strategy: Key of ``DOCKING_PRESETS``.
        data_collector: Optional run data logger.
        startup_timeout: Time allowed for encoder and IMU telemetry to start.

    Returns:
        True if every recipe command succeeded.
    """
    try:
        text = store.load_recipe_text(recipe)
    except (FileNotFoundError, OSError) as e:
        logging.error(f"Failed to read recipe {recipe}: {e}")
        if isinstance(e, FileNotFoundError):
            logging.info(f"Available recipes: {', '.join(store.list_recipes()) or 'none'}")
        return False

    config = DOCKING_PRESETS[dock_strategy]().with_offsets(store.load_docking_offsets())

    motion = MotionExecutor(robot, telemetry, abort, data_collector=data_collector)
    follower = PathFollower(
        motion,
        DockingController(robot, telemetry, motion, abort, config, data_collector=data_collector),
        FiducialAligner(robot, telemetry, motion, abort),
        MapNavigator(robot, telemetry, motion, abort),
        abort,
        data_collector=data_collector,
    )

    try:
        await motion.start()
        if not await motion.wait_for_telemetry(startup_timeout):
            await motion.speak("I am not receiving IMU and encoder messages as expected. Unable to execute the recipe.")
            return False

        commands = await follower.load_commands(text)
        result = await follower.execute(commands)
        return result.success
    except RobotCommandError as e:
        logging.error(f"Session aborted: {e}")
        return False
    finally:
        await motion.stop()


async def main(
    recipe: str,
    uri: str = WS_URI,
    data_dir: str = DATA_DIR,
    dock_strategy: str = "wedge",
    output_dir: str = ".",
) -> bool:
    """Main entry point for a path-following session.

    Connects to the robot, sets up signal handlers for graceful shutdown, and
    runs the recipe.

    Returns:
        True if the recipe completed successfully.
    """
    telemetry = RobotTelemetry()
    robot = WebSocketRobot(uri, telemetry)
    abort = AbortToken()
    store = DataStore(Path(data_dir))

    loop = asyncio.get_event_loop()

    def signal_handler() -> None:
        """Handle shutdown signals (SIGINT, SIGTERM)."""
        logging.info("\nShutdown signal received...")
        abort.abort()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    receiver = asyncio.create_task(robot.run())
    try:
        if not await robot.wait_connected(TELEMETRY_STARTUP_TIMEOUT):
            logging.error(f"{TERM_ORANGE}Could not connect to robot at {uri}{TERM_RESET}")
            return False
        with DataCollector(output_dir=output_dir) as collector:
            return await run_session(
                robot, telemetry, store, recipe, abort, dock_strategy=dock_strategy, data_collector=collector
            )
    finally:
        robot.stop()
        await receiver


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a navigation and docking recipe on the robot")
    parser.add_argument("--recipe", required=True, help="Recipe name in the data directory")
    parser.add_argument("--uri", default=WS_URI, help=f"Robot bridge WebSocket URI (default: {WS_URI})")
    parser.add_argument("--data-dir", default=DATA_DIR, help=f"Recipe and offsets directory (default: {DATA_DIR})")
    parser.add_argument(
        "--dock-strategy",
        choices=sorted(DOCKING_PRESETS),
        default="wedge",
        help="Docking preset used by DOCK commands (default: wedge)",
    )
    parser.add_argument("--output-dir", default=".", help="Base directory for run data (default: current directory)")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    return parser


if __name__ == "__main__":
    args = build_parser().parse_args()
    setup_logging(args.verbose)

    try:
        ok = asyncio.run(main(args.recipe, args.uri, args.data_dir, args.dock_strategy, args.output_dir))
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(1)
    sys.exit(0 if ok else 1)
