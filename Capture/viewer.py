from typing import Iterable, Tuple

import cv2
import numpy as np

from Capture.cancellation import CancellationToken
from utils.logger import get_logger

WINDOW_COLOR = "color image"
WINDOW_DEPTH = "depth image"

# q / Esc
STOP_KEYS = (ord('q'), 27)


class LiveViewer:
    """
    实时显示彩色图与深度图

    Two OpenCV windows showing the latest frames. A left mouse button press
    on either window, or q / Esc, cancels the shared token; the capture loop
    picks that up at the start of its next iteration.
    """
    def __init__(self, token: CancellationToken, poll_delay_ms: int = 1,
                 windows: Tuple[str, str] = (WINDOW_COLOR, WINDOW_DEPTH),
                 stop_keys: Iterable[int] = STOP_KEYS):
        self.token = token
        self.poll_delay_ms = poll_delay_ms
        self.window_color, self.window_depth = windows
        self.stop_keys = tuple(stop_keys)
        self.logger = get_logger("viewer")
        self._opened = False

    def open(self) -> None:
        for name in (self.window_color, self.window_depth):
            cv2.namedWindow(name, cv2.WINDOW_NORMAL)
            cv2.setMouseCallback(name, self._on_mouse, name)
        self._opened = True
        self.logger.info("viewer open, click either window or press 'q' to stop")

    def _on_mouse(self, event, x, y, flags, window_name) -> None:
        if event == cv2.EVENT_LBUTTONDOWN:
            self.logger.info(f"stop requested by click on '{window_name}'")
            self.token.cancel(f"mouse click on '{window_name}'")

    def _wait_key(self) -> None:
        key = cv2.waitKey(self.poll_delay_ms) & 0xFF
        if key in self.stop_keys:
            self.logger.info(f"stop requested by key {key}")
            self.token.cancel(f"key {key}")

    def poll(self) -> None:
        """Handle pending key and mouse events without drawing, e.g. after a skipped frame."""
        if self._opened:
            self._wait_key()

    def show_frame(self, window_id: str, image: np.ndarray) -> None:
        """Replace the image in the window and poll input events."""
        cv2.imshow(window_id, image)
        self._wait_key()

    def show_pair(self, color: np.ndarray, depth: np.ndarray) -> None:
        if not self._opened:
            self.open()
        self.show_frame(self.window_color, color)
        self.show_frame(self.window_depth, depth)

    def close(self) -> None:
        if self._opened:
            cv2.destroyAllWindows()
            self._opened = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
