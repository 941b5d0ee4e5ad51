#!/usr/bin/env python3
"""
深度相机采集工具

Opens one depth camera, pulls synchronized color/depth frame pairs and writes
them as numbered PNG files under <output_dir>/color and <output_dir>/depth.

    python log_capture.py frames/ 1 --device realsense
    python log_capture.py frames/ 0 --device kinect --duration 10
"""
import argparse
import logging
import sys
from typing import Any, Dict, Optional, Tuple

from Capture.cancellation import CancellationToken
from Capture.capture_loop import CaptureLoop, CaptureSummary
from Capture.config import CaptureConfig, SUPPORTED_DEVICES
from Capture.frame_writer import FrameWriter
from Capture.viewer import LiveViewer
from Sensor.sensor_base import CaptureError, DepthSensor, SessionError
from utils.logger import get_logger, setup_logger

logger = get_logger("log_capture")

TRUE_WORDS = ("1", "true", "yes", "on")
FALSE_WORDS = ("0", "false", "no", "off")


def parse_bool(value: str) -> bool:
    word = value.strip().lower()
    if word in TRUE_WORDS:
        return True
    if word in FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean (1/0, true/false), got '{value}'")


def build_parser(device: Optional[str] = None) -> argparse.ArgumentParser:
    prog = {"realsense": "rs-log", "kinect": "kinect-log"}.get(device)
    parser = argparse.ArgumentParser(
        prog=prog, description="Log synchronized color/depth frames from a depth camera to PNG files")
    parser.add_argument("output_dir", nargs="?", help="output directory, color/ and depth/ are created inside")
    parser.add_argument("viewer", nargs="?", type=parse_bool, default=None,
                        help="show live color/depth windows (1/0), click a window to stop")
    if device is None:
        parser.add_argument("--device", choices=SUPPORTED_DEVICES, default="realsense",
                            help="camera family, default realsense")
    parser.add_argument("--duration", type=float, default=None,
                        help="time budget in seconds, 0 = until stopped (kinect default 10)")
    parser.add_argument("--warmup", type=int, default=None, help="frames dropped before logging")
    parser.add_argument("--width", type=int, default=None)
    parser.add_argument("--height", type=int, default=None)
    parser.add_argument("--fps", type=int, default=None)
    parser.add_argument("--depth-max", type=float, default=None,
                        help="raw depth value mapped to 255 in depth/, default 65535 (e.g. 4500 for Kinect mm)")
    parser.add_argument("--serial", type=str, default=None, help="device serial, default first device")
    parser.add_argument("--pipeline", choices=("opengl", "opencl", "cpu"), default=None,
                        help="Kinect depth packet pipeline, default opengl")
    parser.add_argument("--align", action="store_true", help="align depth to the color camera (realsense)")
    parser.add_argument("--ir", action="store_true", help="also request the infrared stream")
    parser.add_argument("--raw-depth", action="store_true", help="also keep 16-bit depth in depth_raw/")
    parser.add_argument("--metadata", action="store_true", help="write per-frame metadata CSV to metadata/")
    parser.add_argument("--no-count-failed", action="store_true",
                        help="skipped frames do not consume a file index")
    parser.add_argument("--list-devices", action="store_true", help="list connected cameras and exit")
    parser.add_argument("--log-level", default="INFO", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    parser.add_argument("--log-dir", default="logs", help="log file directory")
    parser.add_argument("--no-log-file", action="store_true", help="log to the console only")
    parser.add_argument("--no-color", action="store_true", help="plain console log output")
    return parser


def config_from_args(args: argparse.Namespace, device: str) -> CaptureConfig:
    if device == "kinect":
        fixed = [f"--{name}" for name in ("width", "height", "fps") if getattr(args, name) is not None]
        if fixed:
            # registered output is always 512x424 at the sensor rate
            raise ValueError(f"{', '.join(fixed)} cannot be set for kinect")
    config = CaptureConfig.from_preset(
        device,
        output_dir=args.output_dir,
        viewer_enabled=args.viewer,
        duration=args.duration,
        warmup_frames=args.warmup,
        width=args.width,
        height=args.height,
        fps=args.fps,
        serial=args.serial,
        packet_pipeline=args.pipeline,
        depth_max=args.depth_max,
    )
    if args.duration == 0:
        config.duration = None
    if args.align:
        config.align_to_color = True
    if args.ir and "ir" not in config.streams:
        config.streams.append("ir")
    config.save_raw_depth = args.raw_depth
    config.export_metadata = args.metadata
    config.count_failed_frames = not args.no_count_failed
    config.validate()
    return config


def create_sensor(config: CaptureConfig) -> Tuple[DepthSensor, Dict[str, Any]]:
    """
    Construct the sensor for config.device.
    Returns:
        (sensor, keyword arguments for sensor.set_up)
    """
    if config.device == "realsense":
        from Sensor.depth_camera import RealsenseSensor
        return RealsenseSensor("realsense"), {
            "camera_serial": config.serial,
            "resolution": [config.width, config.height],
            "fps": config.fps,
            "enable_alignment": config.align_to_color,
            "collect_metadata": config.export_metadata,
        }
    if config.device == "kinect":
        from Sensor.kinect_camera import KinectSensor
        return KinectSensor("kinect"), {
            "camera_serial": config.serial,
            "packet_pipeline": config.packet_pipeline,
            "collect_metadata": config.export_metadata,
        }
    raise ValueError(f"unknown device '{config.device}'")


def list_devices(device: str) -> int:
    if device == "realsense":
        from Sensor.depth_camera import list_realsense_devices
        list_realsense_devices()
    else:
        from Sensor.kinect_camera import list_kinect_devices
        list_kinect_devices()
    return 0


def run_capture(config: CaptureConfig, token: Optional[CancellationToken] = None) -> CaptureSummary:
    """
    Output tree first, then the device session, then the loop. The session is
    released on every exit path.
    """
    writer = FrameWriter.from_config(config)
    writer.prepare()

    token = token if token is not None else CancellationToken()
    sensor, set_up_kwargs = create_sensor(config)
    with sensor:
        sensor.set_collect_info(config.streams)
        sensor.set_up(**set_up_kwargs)
        sensor.warm_up(config.warmup_frames, config.wait_timeout_ms)

        viewer = LiveViewer(token, config.poll_delay_ms) if config.viewer_enabled else None
        try:
            loop = CaptureLoop(sensor, writer, config, viewer=viewer, token=token)
            return loop.run()
        finally:
            if viewer is not None:
                viewer.close()


def main(argv=None, device: Optional[str] = None) -> int:
    parser = build_parser(device)
    args = parser.parse_args(argv)
    device = device or args.device

    setup_logger(log_level=getattr(logging, args.log_level),
                 log_dir=None if args.no_log_file else args.log_dir,
                 enable_color=not args.no_color)

    if args.list_devices:
        return list_devices(device)
    if not args.output_dir:
        parser.error("the following arguments are required: output_dir")

    try:
        config = config_from_args(args, device)
    except ValueError as e:
        parser.error(str(e))

    logger.info(f"launching capture: {config.device} -> {config.output_dir}")
    try:
        summary = run_capture(config)
    except SessionError as e:
        logger.error(f"session error: {e}")
        print(e.describe(), file=sys.stderr)
        return 1
    except CaptureError as e:
        logger.error(str(e))
        print(e, file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("capture failed")
        print(e, file=sys.stderr)
        return 1

    print(f"elapsed time: {summary.elapsed:.2f}s, no. of frames: {summary.frame_counter} "
          f"({summary.accepted} written, {summary.skipped} skipped)")
    logger.info("capture complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
