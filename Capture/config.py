from dataclasses import dataclass, field
from typing import Optional, List

from utils.depth_utils import Z16_MAX

SUPPORTED_DEVICES = ("realsense", "kinect")

# 每种设备的默认采集参数，命令行参数会覆盖这些值
DEVICE_PRESETS = {
    "realsense": {
        "output_dir": "frames",
        "viewer_enabled": True,
        "width": 640,
        "height": 480,
        "fps": 30,
        "duration": None,
        "warmup_frames": 30,
        "file_prefix": "frame-",
        "index_digits": 6,
        "kind_suffix": True,
        "depth_max": Z16_MAX,
        "align_to_color": False,
        "poll_delay_ms": 1,
    },
    "kinect": {
        "viewer_enabled": False,
        # registered output always lands on the 512x424 depth grid
        "width": 512,
        "height": 424,
        "fps": 30,
        "duration": 10.0,
        "warmup_frames": 0,
        "file_prefix": "",
        "index_digits": 4,
        "kind_suffix": False,
        "depth_max": Z16_MAX,
        "align_to_color": True,
        "poll_delay_ms": 10,
        "streams": ["color", "depth", "ir"],
    },
}


@dataclass
class CaptureConfig:
    device: str = "realsense"
    output_dir: str = "frames"
    viewer_enabled: bool = False
    width: int = 640
    height: int = 480
    fps: int = 30
    # seconds, None = run until stopped
    duration: Optional[float] = None
    warmup_frames: int = 0
    file_prefix: str = ""
    index_digits: int = 6
    kind_suffix: bool = False
    image_ext: str = ".png"
    depth_max: float = Z16_MAX
    count_failed_frames: bool = True
    save_raw_depth: bool = False
    export_metadata: bool = False
    align_to_color: bool = False
    serial: Optional[str] = None
    packet_pipeline: str = "opengl"
    streams: List[str] = field(default_factory=lambda: ["color", "depth"])
    wait_timeout_ms: int = 5000
    poll_delay_ms: int = 1

    @classmethod
    def from_preset(cls, device: str, **overrides) -> "CaptureConfig":
        """Preset for the device family, with every non-None override applied."""
        if device not in DEVICE_PRESETS:
            raise ValueError(f"unknown device '{device}', expected one of {SUPPORTED_DEVICES}")
        values = dict(DEVICE_PRESETS[device])
        values.update({k: v for k, v in overrides.items() if v is not None})
        values["device"] = device
        if "streams" in values:
            values["streams"] = list(values["streams"])
        return cls(**values)

    @property
    def frame_period(self) -> float:
        return 1.0 / self.fps

    def validate(self) -> None:
        if self.device not in SUPPORTED_DEVICES:
            raise ValueError(f"unknown device '{self.device}', expected one of {SUPPORTED_DEVICES}")
        if not self.output_dir:
            raise ValueError("output_dir must not be empty")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"resolution must be positive, got {self.width}x{self.height}")
        if self.fps <= 0:
            raise ValueError(f"fps must be positive, got {self.fps}")
        if self.duration is not None and self.duration <= 0:
            raise ValueError(f"duration must be positive, got {self.duration}")
        if self.warmup_frames < 0:
            raise ValueError(f"warmup_frames must not be negative, got {self.warmup_frames}")
        if self.index_digits < 1:
            raise ValueError(f"index_digits must be at least 1, got {self.index_digits}")
        if self.depth_max <= 0:
            raise ValueError(f"depth_max must be positive, got {self.depth_max}")
        if not self.image_ext.startswith("."):
            raise ValueError(f"image_ext must start with '.', got {self.image_ext}")
        if self.wait_timeout_ms <= 0:
            raise ValueError(f"wait_timeout_ms must be positive, got {self.wait_timeout_ms}")
        if self.poll_delay_ms < 1:
            raise ValueError(f"poll_delay_ms must be at least 1, got {self.poll_delay_ms}")
