import enum
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import cv2

from Capture.cancellation import CancellationToken
from Capture.config import CaptureConfig
from Capture.frame_writer import FrameWriter
from Capture.viewer import LiveViewer
from Sensor.sensor_base import DepthSensor, FramePair, FrameError
from utils.depth_utils import color_to_bgr, depth_to_8bit, depth_to_uint16
from utils.logger import get_logger

STOP_TIME_BUDGET = "time budget elapsed"
STOP_KEYBOARD = "keyboard interrupt"


class FrameOutcome(enum.Enum):
    ACCEPTED = "accepted"
    SKIPPED = "skipped"
    # arrived after the time budget, not written
    DROPPED = "dropped"


@dataclass
class CaptureSummary:
    iterations: int = 0
    accepted: int = 0
    skipped_indices: List[int] = field(default_factory=list)
    # value of the frame counter when the loop ended
    frame_counter: int = 0
    elapsed: float = 0.0
    stop_reason: Optional[str] = None

    @property
    def skipped(self) -> int:
        return len(self.skipped_indices)


class CaptureLoop:
    """
    采集主循环

    wait for frame pair -> convert -> write -> show, until the time budget
    elapses, the token is cancelled, or a SessionError escapes.

    A frame set that arrives more than one frame period after the time budget
    is dropped unwritten and ends the loop.

    Per-iteration FrameErrors skip the iteration. With count_failed_frames the
    skipped iteration still consumes its frame index, so file names stay
    aligned with iteration numbers; without it the next accepted frame reuses
    the index.

    ===== Usage =====
        loop = CaptureLoop(sensor, writer, config, viewer=viewer, token=token)
        summary = loop.run()
    """
    def __init__(self, sensor: DepthSensor, writer: FrameWriter, config: CaptureConfig,
                 viewer: Optional[LiveViewer] = None,
                 token: Optional[CancellationToken] = None,
                 clock: Callable[[], float] = time.perf_counter):
        self.sensor = sensor
        self.writer = writer
        self.config = config
        self.viewer = viewer
        self.token = token if token is not None else CancellationToken()
        self.clock = clock
        self.logger = get_logger("capture_loop")
        self.frame_counter = 0
        self.summary = CaptureSummary()
        self._start = None
        self._late_frame = False

    def elapsed(self) -> float:
        if self._start is None:
            return 0.0
        return self.clock() - self._start

    def convert(self, pair: FramePair) -> FramePair:
        """Color to BGR, depth rescaled to 8 bit. Raises FrameError."""
        try:
            color = color_to_bgr(pair.color)
            depth = depth_to_8bit(pair.depth, self.config.depth_max)
            raw_depth = depth_to_uint16(pair.depth) if self.config.save_raw_depth else None
        except (cv2.error, ValueError) as e:
            raise FrameError(f"frame conversion failed: {e}") from e
        return FramePair(color=color, depth=depth, ir=pair.ir, timestamp=pair.timestamp,
                         raw_depth=raw_depth, metadata=pair.metadata)

    def step(self) -> FrameOutcome:
        """One iteration. SessionError propagates, FrameError is recorded."""
        index = self.frame_counter
        self.summary.iterations += 1
        try:
            pair = self.sensor.next_frame_pair(self.config.wait_timeout_ms)
            if self._past_budget():
                self.logger.info(f"frame {index} arrived at {self.elapsed():.2f}s, "
                                 f"past the time budget, dropped")
                self._late_frame = True
                return FrameOutcome.DROPPED
            converted = self.convert(pair)
            self.writer.write_frame(converted, index)
        except FrameError as e:
            self.logger.warning(f"frame {index} skipped: {e}")
            self.summary.skipped_indices.append(index)
            if self.config.count_failed_frames:
                self.frame_counter += 1
            if self.viewer is not None:
                self.viewer.poll()
            return FrameOutcome.SKIPPED

        self.frame_counter += 1
        self.summary.accepted += 1
        if self.viewer is not None:
            self.viewer.show_pair(converted.color, converted.depth)
        return FrameOutcome.ACCEPTED

    def _past_budget(self) -> bool:
        # one frame period of slack for the frame in flight when the budget ends
        if self.config.duration is None:
            return False
        return self.elapsed() > self.config.duration + self.config.frame_period

    def stop_reason(self) -> Optional[str]:
        if self.token.cancelled:
            return self.token.reason
        if self._late_frame:
            return STOP_TIME_BUDGET
        if self.config.duration is not None and self.elapsed() >= self.config.duration:
            return STOP_TIME_BUDGET
        return None

    def run(self) -> CaptureSummary:
        self._start = self.clock()
        budget = f"{self.config.duration}s" if self.config.duration is not None else "none"
        self.logger.info(f"capture started, time budget: {budget}")
        try:
            while True:
                reason = self.stop_reason()
                if reason is not None:
                    self.summary.stop_reason = reason
                    break
                self.step()
        except KeyboardInterrupt:
            self.token.cancel(STOP_KEYBOARD)
            self.summary.stop_reason = STOP_KEYBOARD
        finally:
            self.summary.frame_counter = self.frame_counter
            self.summary.elapsed = self.elapsed()

        self.logger.info(
            f"capture finished ({self.summary.stop_reason}): elapsed {self.summary.elapsed:.2f}s, "
            f"{self.summary.iterations} iterations, {self.summary.accepted} accepted, "
            f"{self.summary.skipped} skipped")
        return self.summary
