import os
from typing import List

import cv2

from Sensor.sensor_base import FramePair, FrameError, OutputDirError
from utils.logger import get_logger
from utils.metadata_csv import metadata_to_csv


class FrameWriter:
    """
    帧持久化

    Writes every accepted FramePair into parallel directory trees:

        <output_dir>/color/<name>
        <output_dir>/depth/<name>
        <output_dir>/depth_raw/<name>      (save_raw_depth)
        <output_dir>/metadata/<name>.csv   (export_metadata, one per stream)

    <name> is <prefix><zero padded index>[.<kind>]<ext>, so lexical order of
    each directory equals capture order.
    """
    def __init__(self, output_dir: str, file_prefix: str = "", index_digits: int = 6,
                 kind_suffix: bool = False, image_ext: str = ".png",
                 save_raw_depth: bool = False, export_metadata: bool = False):
        self.output_dir = output_dir
        self.file_prefix = file_prefix
        self.index_digits = index_digits
        self.kind_suffix = kind_suffix
        self.image_ext = image_ext
        self.save_raw_depth = save_raw_depth
        self.export_metadata = export_metadata
        self.logger = get_logger("frame_writer")
        self.color_dir = os.path.join(output_dir, "color")
        self.depth_dir = os.path.join(output_dir, "depth")
        self.depth_raw_dir = os.path.join(output_dir, "depth_raw")
        self.metadata_dir = os.path.join(output_dir, "metadata")

    @classmethod
    def from_config(cls, config) -> "FrameWriter":
        return cls(
            output_dir=config.output_dir,
            file_prefix=config.file_prefix,
            index_digits=config.index_digits,
            kind_suffix=config.kind_suffix,
            image_ext=config.image_ext,
            save_raw_depth=config.save_raw_depth,
            export_metadata=config.export_metadata,
        )

    @property
    def directories(self) -> List[str]:
        dirs = [self.color_dir, self.depth_dir]
        if self.save_raw_depth:
            dirs.append(self.depth_raw_dir)
        if self.export_metadata:
            dirs.append(self.metadata_dir)
        return dirs

    def prepare(self) -> None:
        """Create the output tree (with parents). Raises OutputDirError."""
        for path in self.directories:
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as e:
                raise OutputDirError(f"cannot create output directory {path}: {e}") from e
        self.logger.info(f"writing frames under {os.path.abspath(self.output_dir)}")

    def frame_name(self, index: int, kind: str) -> str:
        if index < 0:
            raise ValueError(f"frame index must not be negative, got {index}")
        name = f"{self.file_prefix}{index:0{self.index_digits}d}"
        if self.kind_suffix:
            name += f".{kind}"
        return name + self.image_ext

    def write_frame(self, pair: FramePair, index: int) -> List[str]:
        """
        Write one converted FramePair under the given counter value.

        Files already written for this index are removed again when a later
        one fails, so a skipped frame leaves nothing behind.
        Returns:
            list of written paths
        Raises:
            FrameError: an image could not be encoded or written
        """
        written = []
        try:
            written.append(self._write_image(
                os.path.join(self.color_dir, self.frame_name(index, "color")), pair.color))
            written.append(self._write_image(
                os.path.join(self.depth_dir, self.frame_name(index, "depth")), pair.depth))
            if self.save_raw_depth and pair.raw_depth is not None:
                path = os.path.join(self.depth_raw_dir, self.frame_name(index, "depth"))
                written.append(self._write_image(path, pair.raw_depth))
            if self.export_metadata:
                for kind, attributes in pair.metadata.items():
                    written.append(self._write_metadata(index, kind, attributes))
        except FrameError:
            self._remove(written)
            raise
        return written

    def _write_metadata(self, index: int, kind: str, attributes) -> str:
        # one file per stream, kind is always part of the name
        name = f"{self.file_prefix}{index:0{self.index_digits}d}.{kind}.csv"
        path = os.path.join(self.metadata_dir, name)
        try:
            metadata_to_csv(kind, attributes, path)
        except OSError as e:
            raise FrameError(f"failed to write {path}: {e}") from e
        return path

    def _write_image(self, path: str, image) -> str:
        try:
            ok = cv2.imwrite(path, image)
        except cv2.error as e:
            raise FrameError(f"failed to encode {path}: {e}") from e
        if not ok:
            raise FrameError(f"failed to write {path}")
        return path

    def _remove(self, paths: List[str]) -> None:
        for path in paths:
            try:
                os.remove(path)
            except OSError as e:
                self.logger.warning(f"could not remove partial output {path}: {e}")
