import csv
from typing import Any, Dict

from utils.logger import get_logger

logger = get_logger("metadata_csv")


def metadata_to_csv(stream: str, attributes: Dict[str, Any], filename: str) -> None:
    """
    将单帧元数据写入 .csv 文件

    Layout:
        stream,<stream name>
        Metadata Attribute,Value
        <attribute>,<value>
        ...

    Args:
        stream: stream kind the frame came from
        attributes: every metadata attribute the device supports for this frame
        filename: destination path
    """
    logger.debug(f"writing metadata to {filename}")
    with open(filename, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["stream", stream])
        writer.writerow(["Metadata Attribute", "Value"])
        for key, value in attributes.items():
            writer.writerow([key, value])
