#!/usr/bin/env python3
"""RealSense frame logger: log_capture preconfigured for RealSense cameras."""
import sys

from log_capture import main as capture_main


def main(argv=None) -> int:
    return capture_main(argv, device="realsense")


if __name__ == "__main__":
    sys.exit(main())
