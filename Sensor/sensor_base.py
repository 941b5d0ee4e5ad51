from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from utils.logger import get_logger
from abc import ABC, abstractmethod
import numpy as np

# 设备可提供的数据流类型
STREAM_KINDS = ("color", "depth", "ir")


class CaptureError(RuntimeError):
    """Base class of every error raised by the capture tools."""


class SessionError(CaptureError):
    """
    Fatal device/session error (device absent, unsupported configuration,
    SDK runtime failure, device disconnected).

    failed_function / failed_args name the SDK call that failed when known.
    """

    def __init__(self, message: str, failed_function: Optional[str] = None,
                 failed_args: Optional[str] = None, vendor: str = "device"):
        super().__init__(message)
        self.vendor = vendor
        self.failed_function = failed_function
        self.failed_args = failed_args

    def describe(self) -> str:
        if self.failed_function:
            return (f"{self.vendor} error calling {self.failed_function}"
                    f"({self.failed_args or ''}):\n    {self}")
        return str(self)


class FrameError(CaptureError):
    """A single frame wait or conversion failed; the iteration is skipped."""


class OutputDirError(CaptureError):
    """The output directory tree could not be created."""


@dataclass
class FramePair:
    """
    One synchronized color+depth sample from a single capture instant.

    color: BGR(A) image (H, W, 3|4)
    depth: single channel depth (H, W), uint16 or float32 in millimetres,
           or uint8 once rescaled for logging
    ir: optional secondary channel
    raw_depth: native depth kept alongside the rescaled one when requested
    metadata: per stream kind, vendor metadata attribute -> value
    """
    color: np.ndarray
    depth: np.ndarray
    ir: Optional[np.ndarray] = None
    timestamp: Optional[float] = None
    raw_depth: Optional[np.ndarray] = None
    metadata: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class DepthSensor(ABC):
    """
    深度相机传感器基类

    Every device family implements the same small capability set, so that a
    single capture loop can drive any of them.

    ===== Usage =====

    1. Create the sensor:
       sensor = ConcreteSensor("camera_name")

    2. Open the session (device specific arguments):
       sensor.set_up(...)

    3. Pull frames (blocking):
       pair = sensor.next_frame_pair(timeout_ms=5000)

    4. Release the device:
       sensor.cleanup()   # or use "with sensor:"

    ===== Public interface =====
    - set_collect_info(collect_info): choose stream kinds
    - set_up(...): openSession, raises SessionError
    - next_frame_pair(timeout_ms): nextFramePair, raises FrameError / SessionError
    - warm_up(count): discard the first frames
    - get_intrinsics(): camera intrinsics, if the device reports them
    - cleanup(): stop + close, safe to call more than once

    ===== Internal (do not call from outside) =====
    - _acquire_frame_pair(timeout_ms): device specific blocking wait
    """
    def __init__(self, name: str):
        self.name = name
        self.type = "depth_sensor"
        self.collect_info: List[str] = ["color", "depth"]
        self.logger = get_logger(self.name)
        self._session_started = False

    def set_collect_info(self, collect_info: List[str]) -> None:
        """
        设置需要采集的数据流类型
        Args:
            collect_info: stream kinds, e.g. ["color", "depth", "ir"];
                          color and depth are always required
        """
        unknown = [kind for kind in collect_info if kind not in STREAM_KINDS]
        if unknown:
            raise ValueError(f"unknown stream kind(s): {unknown}")
        if "color" not in collect_info or "depth" not in collect_info:
            raise ValueError("collect_info must include both 'color' and 'depth'")
        self.collect_info = list(collect_info)
        self.logger.info(f"stream selection: {self.collect_info}")

    @property
    def is_started(self) -> bool:
        return self._session_started

    @abstractmethod
    def set_up(self, *args, **kwargs) -> None:
        """Open the device and start streaming. Raises SessionError."""

    @abstractmethod
    def _acquire_frame_pair(self, timeout_ms: int) -> FramePair:
        """Block until a synchronized frame set is available."""

    def next_frame_pair(self, timeout_ms: int = 5000) -> FramePair:
        """
        阻塞获取下一组同步帧
        Raises:
            SessionError: the session is not running or the device is gone
            FrameError: this frame set could not be obtained
        """
        if not self._session_started:
            raise SessionError(f"{self.name}: session not started")
        return self._acquire_frame_pair(timeout_ms)

    def warm_up(self, count: int, timeout_ms: int = 5000) -> None:
        """Drop the first frames to let auto exposure settle."""
        if count <= 0:
            return
        self.logger.info(f"warming up: dropping {count} frames")
        for _ in range(count):
            try:
                self.next_frame_pair(timeout_ms)
            except FrameError as e:
                self.logger.debug(f"warm-up frame dropped with error: {e}")

    def get_intrinsics(self) -> Optional[Dict[str, Any]]:
        return None

    def cleanup(self) -> None:
        self.logger.debug("base sensor cleanup")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and not issubclass(exc_type, KeyboardInterrupt):
            self.logger.error(f"sensor session ended with {exc_type.__name__}: {exc_val}")
        self.cleanup()

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}\n"
                f"name: {self.name}\n"
                f"type: {self.type}\n"
                f"streams: {self.collect_info}\n"
                f"started: {self._session_started}")
