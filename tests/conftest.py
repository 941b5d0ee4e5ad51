import importlib.util
import sys
import types

import cv2
import numpy as np
import pytest

from Capture.config import CaptureConfig
from Sensor.sensor_base import DepthSensor, FramePair, FrameError, SessionError


class FakeClock:
    """Time advances one tick per frame; now = ticks / fps."""

    def __init__(self, fps=30):
        self.fps = fps
        self.ticks = 0

    def advance(self, ticks=1):
        self.ticks += ticks

    def __call__(self):
        return self.ticks / self.fps


class SyntheticSensor(DepthSensor):
    """Deterministic device: frame i has color value i % 256 and depth i * 10."""

    def __init__(self, clock=None, width=64, height=48, fail_at=(), fatal_at=None,
                 open_error=None, interrupt_at=None, depth_dtype=np.uint16, stall=None):
        super().__init__("synthetic")
        self.clock = clock
        self.width = width
        self.height = height
        self.fail_at = set(fail_at)
        self.fatal_at = fatal_at
        self.open_error = open_error
        self.interrupt_at = interrupt_at
        self.depth_dtype = depth_dtype
        # frame index -> extra clock ticks spent waiting for that frame
        self.stall = dict(stall or {})
        self.calls = 0
        self.set_up_calls = 0
        self.cleanup_calls = 0

    def set_up(self, **kwargs):
        self.set_up_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self._session_started = True

    def _acquire_frame_pair(self, timeout_ms):
        i = self.calls
        self.calls += 1
        if self.clock is not None:
            self.clock.advance(1 + self.stall.get(i, 0))
        if i == self.interrupt_at:
            raise KeyboardInterrupt
        if i == self.fatal_at:
            raise SessionError("device unplugged", "wait_for_frames", str(timeout_ms))
        if i in self.fail_at:
            raise FrameError(f"synthetic failure at {i}")
        color = np.full((self.height, self.width, 3), i % 256, dtype=np.uint8)
        depth = np.full((self.height, self.width), i * 10, dtype=self.depth_dtype)
        return FramePair(color=color, depth=depth, timestamp=float(i),
                         metadata={"color": {"frame_counter": i}, "depth": {"frame_counter": i}})

    def cleanup(self):
        self.cleanup_calls += 1
        self._session_started = False


@pytest.fixture
def clock():
    return FakeClock(fps=30)


@pytest.fixture
def config(tmp_path):
    return CaptureConfig(output_dir=str(tmp_path / "frames"), index_digits=4)


@pytest.fixture
def fake_gui(monkeypatch):
    """OpenCV HighGUI replaced by recorders; queue key codes in state["keys"]."""
    state = {"callbacks": {}, "shown": [], "keys": [], "destroyed": 0, "delays": []}

    def set_mouse_callback(name, cb, param=None):
        state["callbacks"][name] = (cb, param)

    def wait_key(delay):
        state["delays"].append(delay)
        return state["keys"].pop(0) if state["keys"] else -1

    def destroy():
        state["destroyed"] += 1

    monkeypatch.setattr(cv2, "namedWindow", lambda name, flags=0: None)
    monkeypatch.setattr(cv2, "setMouseCallback", set_mouse_callback)
    monkeypatch.setattr(cv2, "imshow", lambda name, image: state["shown"].append(name))
    monkeypatch.setattr(cv2, "waitKey", wait_key)
    monkeypatch.setattr(cv2, "destroyAllWindows", destroy)
    return state


def started(sensor):
    sensor.set_up()
    return sensor


def load_adapter(monkeypatch, sdk_name, fake_sdk, module_name):
    """
    Import a camera adapter against a fake vendor SDK module.

    The fake is installed in sys.modules under the SDK's import name and the
    adapter is executed as a fresh module object, so the real SDK is never
    needed and the cached adapter module is left untouched.
    """
    monkeypatch.setitem(sys.modules, sdk_name, fake_sdk)
    spec = importlib.util.find_spec(module_name)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def fake_module(name, **attributes):
    module = types.ModuleType(name)
    for key, value in attributes.items():
        setattr(module, key, value)
    return module
