#!/usr/bin/env python3
"""Kinect v2 frame logger: log_capture preconfigured for Kinect v2, 10 s budget by default."""
import sys

from log_capture import main as capture_main


def main(argv=None) -> int:
    return capture_main(argv, device="kinect")


if __name__ == "__main__":
    sys.exit(main())
