import pyrealsense2 as rs
import numpy as np
from typing import Any, Dict, List, Optional
from .sensor_base import DepthSensor, FramePair, FrameError, SessionError


def list_realsense_devices() -> List[str]:
    """
    打印所有连接的RealSense深度相机数量及序列号
    Returns:
        list of serial numbers
    """
    context = rs.context()
    devices = list(context.query_devices())
    if not devices:
        print("no RealSense device found")
        return []

    serials = []
    print(f"found {len(devices)} RealSense camera(s):")
    for device in devices:
        serial = device.get_info(rs.camera_info.serial_number)
        name = device.get_info(rs.camera_info.name)
        print(f"  {name}  serial: {serial}")
        serials.append(serial)
    return serials


def frame_metadata(frame) -> Dict[str, Any]:
    """Every metadata attribute the frame supports, by attribute name."""
    result = {}
    for name, attribute in rs.frame_metadata_value.__members__.items():
        if frame.supports_frame_metadata(attribute):
            result[name] = frame.get_frame_metadata(attribute)
    return result


class RealsenseSensor(DepthSensor):

    """
    RealSense相机传感器类

    Intel RealSense stereo depth camera. Frames are pulled on the caller's
    thread: next_frame_pair() blocks on pipeline.wait_for_frames().

    ===== Usage =====

    1. Create the sensor:
       sensor = RealsenseSensor("realsense")

    2. Open the session:
       sensor.set_up(camera_serial=None, resolution=[640, 480], fps=30)

    3. Pull frames:
       pair = sensor.next_frame_pair(timeout_ms=5000)

    4. Release:
       sensor.cleanup()

    ===== Data format =====
    FramePair(
        color=np.ndarray,  # BGR (H, W, 3), same layout as OpenCV
        depth=np.ndarray,  # uint16 (H, W), device depth units (mm by default)
        ir=np.ndarray,     # uint8 (H, W), left infrared, only with "ir" selected
    )
    """
    def __init__(self, name: str):
        super().__init__(name)
        self.type = "realsense"
        self.context = None
        self.pipeline = None
        self.config = None
        self.profile = None
        self.align = None
        self.collect_metadata = False
        self.serial = None
        self.resolution = [640, 480]  # 默认分辨率
        self.fps = 30
        self.logger.info(f"RealSense sensor created: {name}")

    def set_up(self, camera_serial: Optional[str] = None, resolution: list = None, fps: int = 30,
               enable_alignment: bool = False, collect_metadata: bool = False) -> None:
        """
        设置RealSense相机
        Args:
            camera_serial: 相机序列号, None opens the first device
            resolution: [width, height], default [640, 480]
            fps: frame rate requested for every stream
            enable_alignment: map depth into the color camera's pixel grid
            collect_metadata: attach per-frame metadata to every FramePair
        Raises:
            SessionError: device absent, unsupported stream request or start failure
        """
        if resolution is not None:
            if not (isinstance(resolution, (list, tuple)) and len(resolution) == 2):
                raise ValueError("resolution must be a [width, height] pair, e.g. [640, 480]")
            self.resolution = list(resolution)
        width, height = self.resolution
        self.fps = fps
        self.collect_metadata = collect_metadata
        self.logger.info(f"setting up camera, serial: {camera_serial or 'first device'}, "
                         f"{width}x{height}@{fps}, streams: {self.collect_info}")

        try:
            self.context = rs.context()
            devices = list(self.context.query_devices())
        except RuntimeError as e:
            raise SessionError(str(e), "rs2_query_devices", vendor="realsense") from e
        if not devices:
            self.logger.error("no RealSense device found")
            raise SessionError("No RealSense devices found")
        self.logger.info(f"found {len(devices)} RealSense device(s)")

        if camera_serial is None:
            camera_serial = devices[0].get_info(rs.camera_info.serial_number)
        elif self._find_device_by_serial(devices, camera_serial) is None:
            self.logger.error(f"no camera with serial {camera_serial}")
            raise SessionError(f"Could not find camera with serial number {camera_serial}")
        self.serial = camera_serial

        self.pipeline = rs.pipeline()
        self.config = rs.config()
        self.config.enable_device(camera_serial)
        self.config.enable_stream(rs.stream.color, width, height, rs.format.bgr8, fps)
        self.config.enable_stream(rs.stream.depth, width, height, rs.format.z16, fps)
        if "ir" in self.collect_info:
            self.config.enable_stream(rs.stream.infrared, 1, width, height, rs.format.y8, fps)

        try:
            self.profile = self.pipeline.start(self.config)
        except RuntimeError as e:
            self.logger.error(f"pipeline start failed: {e}")
            self.pipeline = None
            raise SessionError(str(e), "rs2_pipeline_start_with_config",
                               f"{width}x{height}@{fps}, streams={self.collect_info}",
                               vendor="realsense") from e
        self._session_started = True

        if enable_alignment:
            self.align = rs.align(rs.stream.color)
            self.logger.info("depth aligned to color")

        self._log_intrinsics()
        self.logger.info(f"camera started: {self.name} (SN: {camera_serial})")

    def _acquire_frame_pair(self, timeout_ms: int) -> FramePair:
        try:
            frames = self.pipeline.wait_for_frames(timeout_ms)
        except RuntimeError as e:
            if not self._device_connected():
                raise SessionError(f"camera {self.serial} disconnected: {e}",
                                   "rs2_pipeline_wait_for_frames", str(timeout_ms),
                                   vendor="realsense") from e
            raise FrameError(f"wait for frames failed: {e}") from e

        if self.align is not None:
            frames = self.align.process(frames)

        color_frame = frames.get_color_frame()
        depth_frame = frames.get_depth_frame()
        if not color_frame or not depth_frame:
            raise FrameError("incomplete frame set")

        pair = FramePair(
            color=np.asanyarray(color_frame.get_data()).copy(),
            depth=np.asanyarray(depth_frame.get_data()).copy(),
            timestamp=frames.get_timestamp(),
        )
        if "ir" in self.collect_info:
            ir_frame = frames.get_infrared_frame(1)
            if ir_frame:
                pair.ir = np.asanyarray(ir_frame.get_data()).copy()
        if self.collect_metadata:
            pair.metadata = {
                "color": frame_metadata(color_frame),
                "depth": frame_metadata(depth_frame),
            }
        return pair

    def get_intrinsics(self) -> Optional[Dict[str, Any]]:
        """
        获取当前分辨率下的彩色图像和深度图像内参。
        Returns:
            dict: { 'color': {...}, 'depth': {...} }
        """
        if self.profile is None:
            return None
        result = {}
        for kind, stream in (("color", rs.stream.color), ("depth", rs.stream.depth)):
            intr = self.profile.get_stream(stream).as_video_stream_profile().get_intrinsics()
            result[kind] = {
                'width': intr.width,
                'height': intr.height,
                'ppx': intr.ppx,
                'ppy': intr.ppy,
                'fx': intr.fx,
                'fy': intr.fy,
                'model': str(intr.model),
            }
        return result

    def _log_intrinsics(self) -> None:
        intr = self.get_intrinsics()
        if intr is None:
            return
        depth = intr['depth']
        self.logger.info(f"depth camera principal point : {depth['ppx']}, {depth['ppy']}")
        self.logger.info(f"depth camera focal length    : {depth['fx']}, {depth['fy']}")
        self.logger.info(f"depth camera distortion model: {depth['model']}")

    def _device_connected(self) -> bool:
        try:
            devices = list(self.context.query_devices())
        except RuntimeError:
            return False
        return self._find_device_by_serial(devices, self.serial) is not None

    def cleanup(self):
        """停止pipeline, safe to call more than once"""
        if self.pipeline is not None and self._session_started:
            try:
                self.pipeline.stop()
                self.logger.info("pipeline stopped")
            except RuntimeError as e:
                self.logger.warning(f"pipeline stop failed: {e}")
        self._session_started = False
        self.pipeline = None
        self.align = None

    def __repr__(self) -> str:
        return (f"RealsenseSensor\n"
                f"name: {self.name}\n"
                f"type: {self.type}\n"
                f"serial: {self.serial}\n"
                f"pipeline: {'running' if self._session_started else 'stopped'}")

    def _find_device_by_serial(self, devices, serial):
        """
        根据序列号查找设备索引
        Returns:
            int: 设备在列表中的索引，如果未找到返回None
        """
        for i, dev in enumerate(devices):
            if dev.get_info(rs.camera_info.serial_number) == serial:
                return i
        return None
