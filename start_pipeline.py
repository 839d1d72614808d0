#!/usr/bin/env python3
"""Entry point for the YOLO anchoring pipeline."""

import argparse
import os
import sys
import time
import traceback

from yolo_anchoring.config_manager import ConfigManager
from yolo_anchoring.detection_pipeline import DetectionPipeline
from yolo_anchoring.exceptions import YoloAnchoringError
from yolo_anchoring.logging_config import get_logger, setup_logging
from yolo_anchoring.services.frame_source import OpenCVFrameSource


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run YOLO detection with spatial anchoring")
    parser.add_argument("--config", default=None, help="Path to the JSON configuration file")
    parser.add_argument("--source", default="0", help="Camera index, video file or stream URL")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-dir", default=None, help="Directory for rotating log files")
    parser.add_argument("--fps", type=float, default=30.0, help="Target ticks per second")
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the detection system."""
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_dir)

    logger = get_logger("start_pipeline")
    logger.info("Starting YOLO anchoring pipeline")
    logger.info(f"Python version: {sys.version}")
    logger.info(f"Working directory: {os.getcwd()}")

    source = int(args.source) if args.source.isdigit() else args.source

    try:
        logger.info("Initializing configuration manager...")
        config_manager = ConfigManager(args.config)

        logger.info("Initializing detection pipeline...")
        pipeline = DetectionPipeline(config_manager, frame_source=OpenCVFrameSource(source, args.fps))
    except YoloAnchoringError as e:
        logger.error(f"Pipeline setup failed: {e}")
        return 1

    if not pipeline.start():
        logger.error("Failed to start detection pipeline")
        return 1

    tick_interval = 1.0 / args.fps
    try:
        while True:
            started = time.time()
            pipeline.tick()
            remaining = tick_interval - (time.time() - started)
            if remaining > 0:
                time.sleep(remaining)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error(f"Detection system failed: {e}")
        traceback.print_exc()
        return 1
    finally:
        pipeline.shutdown()
        logger.info("Detection pipeline stopped")

    return 0


if __name__ == "__main__":
    sys.exit(main())
