from types import SimpleNamespace

import numpy as np
import pytest

from Sensor.sensor_base import FrameError, SessionError

from conftest import fake_module, load_adapter


class FakeFrame:
    def __init__(self, width, height, bytes_per_pixel, fill=0):
        self.width = width
        self.height = height
        self.bytes_per_pixel = bytes_per_pixel
        self.fill = fill
        self.timestamp = 42
        self.sequence = 7

    def asarray(self, dtype=np.uint8):
        if dtype == np.uint8:
            return np.full((self.height, self.width, 4), self.fill, dtype=np.uint8)
        return np.full((self.height, self.width), self.fill, dtype=dtype)


class FakeRegistration:
    applied = 0

    def __init__(self, ir_params, color_params):
        self.ir_params = ir_params

    def apply(self, color, depth, undistorted, registered):
        FakeRegistration.applied += 1
        undistorted.fill = depth.fill
        registered.fill = color.fill


class FakeListener:
    def __init__(self, types):
        self.queue = []
        self.released = 0

    def waitForNewFrame(self, timeout_ms=-1):
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def release(self, frames):
        self.released += 1


class FakeDevice:
    start_ok = True

    def __init__(self):
        self.started = False
        self.closed = False

    def setColorFrameListener(self, listener):
        self.listener = listener

    def setIrAndDepthFrameListener(self, listener):
        pass

    def start(self):
        self.started = FakeDevice.start_ok
        return FakeDevice.start_ok

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True

    def getIrCameraParams(self):
        return SimpleNamespace(fx=365.0, fy=365.0, cx=256.0, cy=212.0)

    def getColorCameraParams(self):
        return SimpleNamespace(fx=1081.0, fy=1081.0, cx=960.0, cy=540.0)


@pytest.fixture
def fake_fn2(monkeypatch):
    state = SimpleNamespace(count=1, device=None, camera=None)

    class FakeFreenect2:
        def enumerateDevices(self):
            return state.count

        def getDeviceSerialNumber(self, index):
            return b"003726"

        def openDevice(self, serial, pipeline=None):
            state.device = FakeDevice()
            return state.device

    FakeDevice.start_ok = True
    FakeRegistration.applied = 0
    fn2 = fake_module(
        "pylibfreenect2",
        Freenect2=FakeFreenect2,
        CpuPacketPipeline=lambda: "cpu",
        FrameType=SimpleNamespace(Color=1, Ir=2, Depth=4),
        SyncMultiFrameListener=FakeListener,
        Registration=FakeRegistration,
        Frame=FakeFrame,
    )
    state.camera = load_adapter(monkeypatch, "pylibfreenect2", fn2, "Sensor.kinect_camera")
    return state


def frames(color=10, depth=1500.0):
    return {
        "color": FakeFrame(1920, 1080, 4, color),
        "depth": FakeFrame(512, 424, 4, depth),
        "ir": FakeFrame(512, 424, 4, 300.0),
    }


def test_registered_pair_on_depth_grid(fake_fn2):
    sensor = fake_fn2.camera.KinectSensor("kinect")
    sensor.set_collect_info(["color", "depth", "ir"])
    sensor.set_up(packet_pipeline="cpu", collect_metadata=True)
    sensor.listener.queue.append(frames())

    pair = sensor.next_frame_pair()

    assert pair.color.shape == (424, 512, 4)
    assert pair.depth.shape == (424, 512)
    assert float(pair.depth[0, 0]) == 1500.0
    assert pair.ir is not None
    assert pair.metadata["depth"]["sequence"] == 7
    assert FakeRegistration.applied == 1
    assert sensor.listener.released == 1


def test_missing_pipeline_is_session_error(fake_fn2):
    with pytest.raises(SessionError):
        fake_fn2.camera.KinectSensor("kinect").set_up(packet_pipeline="opengl")


def test_no_device(fake_fn2):
    fake_fn2.count = 0
    with pytest.raises(SessionError):
        fake_fn2.camera.KinectSensor("kinect").set_up(packet_pipeline="cpu")


def test_start_failure_closes_device(fake_fn2):
    FakeDevice.start_ok = False
    sensor = fake_fn2.camera.KinectSensor("kinect")
    with pytest.raises(SessionError):
        sensor.set_up(packet_pipeline="cpu")
    assert fake_fn2.device.closed


def test_wait_failure_is_transient(fake_fn2):
    sensor = fake_fn2.camera.KinectSensor("kinect")
    sensor.set_up(packet_pipeline="cpu")
    sensor.listener.queue.append(RuntimeError("timeout"))
    with pytest.raises(FrameError):
        sensor.next_frame_pair()


def test_cleanup_stops_and_closes(fake_fn2):
    sensor = fake_fn2.camera.KinectSensor("kinect")
    with sensor:
        sensor.set_up(packet_pipeline="cpu")
    assert fake_fn2.device.closed
    assert not fake_fn2.device.started
    sensor.cleanup()


def test_list_devices_decodes_serials(fake_fn2, capsys):
    fake_fn2.count = 2
    assert fake_fn2.camera.list_kinect_devices() == ["003726", "003726"]
    assert "found 2 Kinect v2 device(s)" in capsys.readouterr().out
