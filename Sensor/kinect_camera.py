import numpy as np
import pylibfreenect2 as fn2
from typing import Any, Dict, List, Optional
from .sensor_base import DepthSensor, FramePair, FrameError, SessionError

# registration output lives on the depth camera grid
DEPTH_WIDTH = 512
DEPTH_HEIGHT = 424

PACKET_PIPELINES = {
    "opengl": "OpenGLPacketPipeline",
    "opencl": "OpenCLPacketPipeline",
    "cpu": "CpuPacketPipeline",
}

FRAME_ATTRIBUTES = ("timestamp", "sequence", "exposure", "gain", "gamma")


def list_kinect_devices() -> List[str]:
    """打印所有连接的Kinect v2设备序列号"""
    freenect2 = fn2.Freenect2()
    count = freenect2.enumerateDevices()
    if count == 0:
        print("no Kinect v2 device found")
        return []
    serials = []
    print(f"found {count} Kinect v2 device(s):")
    for i in range(count):
        serial = freenect2.getDeviceSerialNumber(i)
        if isinstance(serial, bytes):
            serial = serial.decode()
        print(f"  [{i}] serial: {serial}")
        serials.append(serial)
    return serials


def frame_attributes(frame) -> Dict[str, Any]:
    result = {}
    for name in FRAME_ATTRIBUTES:
        value = getattr(frame, name, None)
        if value is not None:
            result[name] = value
    return result


class KinectSensor(DepthSensor):
    """
    Kinect v2 传感器类

    Color, IR and depth come from physically separate sensors, so every frame
    set goes through libfreenect2's Registration: depth is undistorted and
    color is mapped onto the 512x424 depth grid.

    ===== Data format =====
    FramePair(
        color=np.ndarray,  # registered BGRX (424, 512, 4), uint8
        depth=np.ndarray,  # undistorted depth (424, 512), float32 millimetres
        ir=np.ndarray,     # IR amplitude (424, 512), float32, only with "ir" selected
    )
    """
    def __init__(self, name: str):
        super().__init__(name)
        self.type = "kinect"
        self.freenect2 = None
        self.device = None
        self.listener = None
        self.registration = None
        self.serial = None
        self.collect_metadata = False
        self._undistorted = None
        self._registered = None
        self.logger.info(f"Kinect sensor created: {name}")

    def set_up(self, camera_serial: Optional[str] = None, packet_pipeline: str = "opengl",
               collect_metadata: bool = False) -> None:
        """
        打开Kinect设备并开始采集
        Args:
            camera_serial: device serial, None opens device 0
            packet_pipeline: "opengl", "opencl" or "cpu" depth decoding
            collect_metadata: attach per-frame attributes to every FramePair
        Raises:
            SessionError: no device, unsupported pipeline or start failure
        """
        self.collect_metadata = collect_metadata
        pipeline_name = PACKET_PIPELINES.get(packet_pipeline)
        if pipeline_name is None or not hasattr(fn2, pipeline_name):
            raise SessionError(f"packet pipeline '{packet_pipeline}' is not available",
                               "Freenect2.openDevice", packet_pipeline, vendor="libfreenect2")
        pipeline = getattr(fn2, pipeline_name)()

        self.freenect2 = fn2.Freenect2()
        if self.freenect2.enumerateDevices() == 0:
            self.logger.error("no Kinect v2 device found")
            raise SessionError("No Kinect v2 devices found")

        if camera_serial is None:
            camera_serial = self.freenect2.getDeviceSerialNumber(0)
        self.serial = camera_serial
        self.logger.info(f"opening Kinect {camera_serial} with {pipeline_name}")
        self.device = self.freenect2.openDevice(camera_serial, pipeline=pipeline)
        if self.device is None:
            raise SessionError(f"Could not open Kinect with serial number {camera_serial}",
                               "Freenect2.openDevice", str(camera_serial), vendor="libfreenect2")

        types = fn2.FrameType.Color | fn2.FrameType.Ir | fn2.FrameType.Depth
        self.listener = fn2.SyncMultiFrameListener(types)
        self.device.setColorFrameListener(self.listener)
        self.device.setIrAndDepthFrameListener(self.listener)
        if not self.device.start():
            self.device.close()
            self.device = None
            raise SessionError("device start failed", "Freenect2Device.start",
                               str(camera_serial), vendor="libfreenect2")
        self._session_started = True

        ir_params = self.device.getIrCameraParams()
        self.registration = fn2.Registration(ir_params, self.device.getColorCameraParams())
        self._undistorted = fn2.Frame(DEPTH_WIDTH, DEPTH_HEIGHT, 4)
        self._registered = fn2.Frame(DEPTH_WIDTH, DEPTH_HEIGHT, 4)

        self.logger.info(f"depth camera principal point : {ir_params.cx}, {ir_params.cy}")
        self.logger.info(f"depth camera focal length    : {ir_params.fx}, {ir_params.fy}")
        self.logger.info(f"camera started: {self.name} (SN: {camera_serial})")

    def _acquire_frame_pair(self, timeout_ms: int) -> FramePair:
        try:
            frames = self.listener.waitForNewFrame(timeout_ms)
        except RuntimeError as e:
            raise FrameError(f"wait for new frame failed: {e}") from e

        try:
            color = frames["color"]
            depth = frames["depth"]
            self.registration.apply(color, depth, self._undistorted, self._registered)
            pair = FramePair(
                color=self._registered.asarray(np.uint8).copy(),
                depth=self._undistorted.asarray(np.float32).copy(),
                timestamp=depth.timestamp,
            )
            if "ir" in self.collect_info:
                pair.ir = frames["ir"].asarray(np.float32).copy()
            if self.collect_metadata:
                pair.metadata = {"color": frame_attributes(color), "depth": frame_attributes(depth)}
        except (KeyError, ValueError) as e:
            raise FrameError(f"incomplete frame set: {e}") from e
        finally:
            self.listener.release(frames)
        return pair

    def get_intrinsics(self) -> Optional[Dict[str, Any]]:
        if self.device is None:
            return None
        result = {}
        for kind, params in (("color", self.device.getColorCameraParams()),
                             ("depth", self.device.getIrCameraParams())):
            result[kind] = {'ppx': params.cx, 'ppy': params.cy, 'fx': params.fx, 'fy': params.fy}
        return result

    def cleanup(self):
        """stop + close, safe to call more than once"""
        if self.device is not None:
            if self._session_started:
                self.device.stop()
                self.logger.info("device stopped")
            self.device.close()
            self.logger.info("device closed")
        self._session_started = False
        self.device = None
        self.registration = None
