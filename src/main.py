"""
Live object detection overlay.

Captures the camera, runs an object-detection model on it every few hundred
milliseconds and draws labelled boxes over the live video. Detection is
toggled from the web page (or with `d` in the local window).

Usage:
    python src/main.py --config config/config.yaml --display

Arguments:
    --config: Path to configuration file
    --display: Open a local preview window
    --autostart: Start detecting as soon as the model is loaded
    --no-web: Do not start the web interface
"""

import os
import sys
import argparse
import logging
import threading
from typing import Any, Dict, Optional, Tuple

import cv2
import uvicorn
import yaml

from models.config import Config
from ops.logging import setup_logging
from pipeline.errors import InvalidStartPrecondition
from runtime.context import RuntimeContext, build_context
from web.app import create_app


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not the local override file itself
        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['camera', 'detection', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate camera settings
    camera = config.get('camera') or {}
    if 'device_id' not in camera:
        return False, "Missing camera.device_id"
    if not isinstance(camera['device_id'], (int, str)) or isinstance(camera['device_id'], bool):
        return False, "camera.device_id must be an integer (index) or string (URL/path)"
    if isinstance(camera['device_id'], int) and camera['device_id'] < 0:
        return False, "camera.device_id integer must be non-negative"

    if 'resolution' in camera:
        if not isinstance(camera['resolution'], list) or len(camera['resolution']) != 2:
            return False, "camera.resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in camera['resolution']):
            return False, "camera.resolution values must be positive integers"

    if 'fps' in camera and (not isinstance(camera['fps'], int) or camera['fps'] <= 0):
        return False, "camera.fps must be a positive integer"

    for key in ('buffer_size', 'max_retries'):
        if key in camera and (not isinstance(camera[key], int) or camera[key] <= 0):
            return False, f"camera.{key} must be a positive integer"

    if camera.get('backend', 'opencv') != 'opencv':
        return False, "camera.backend must be: opencv"

    rotate = camera.get('rotate', 0) or 0
    if rotate not in (0, 90, 180, 270):
        return False, "camera.rotate must be one of: 0, 90, 180, 270"

    # Validate detection settings
    detection = config.get('detection') or {}
    backend = detection.get('backend', 'yolo')
    if backend != 'yolo':
        return False, "detection.backend must be: yolo"
    yolo_cfg = detection.get('yolo') or {}
    if 'model' in yolo_cfg and (not isinstance(yolo_cfg['model'], str) or not yolo_cfg['model']):
        return False, "detection.yolo.model must be a non-empty string"
    for key in ('conf_threshold', 'iou_threshold'):
        if key in yolo_cfg:
            value = yolo_cfg[key]
            if not isinstance(value, (int, float)) or not (0 <= value <= 1):
                return False, f"detection.yolo.{key} must be a number between 0 and 1"

    # Optional loop settings
    loop = config.get('loop') or {}
    if 'interval_ms' in loop:
        interval = loop['interval_ms']
        if not isinstance(interval, int) or interval <= 0:
            return False, "loop.interval_ms must be a positive integer"
    timeout = loop.get('inference_timeout_s')
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        return False, "loop.inference_timeout_s must be a positive number or null"

    # Optional web settings
    web = config.get('web') or {}
    if 'port' in web and (not isinstance(web['port'], int) or not (0 < web['port'] < 65536)):
        return False, "web.port must be an integer between 1 and 65535"

    # Validate log settings
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config['log_level'] not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


def start_web_server(ctx: RuntimeContext) -> threading.Thread:
    """Serve the web interface on a daemon thread."""
    web_cfg = ctx.config.web

    def run_web_app():
        uvicorn.run(
            create_app(ctx),
            host=web_cfg.host,
            port=web_cfg.port,
            log_level="info",
        )

    web_thread = threading.Thread(target=run_web_app, name="WebServer", daemon=True)
    web_thread.start()
    logging.info(f"Web interface started on {web_cfg.host}:{web_cfg.port}")
    return web_thread


def run_display(ctx: RuntimeContext, window_name: str = "Live Detection") -> None:
    """
    Show the overlaid camera in a local window until `q` is pressed.

    `d` toggles detection, like the button on the web page.
    """
    try:
        while True:
            frame = ctx.preview_frame()
            if frame is not None:
                cv2.imshow(window_name, frame)
            key = cv2.waitKey(30) & 0xFF
            if key == ord('q'):
                break
            if key == ord('d'):
                try:
                    state = ctx.loop.toggle()
                    logging.info(f"Detection {state.value}")
                except InvalidStartPrecondition as e:
                    logging.warning(f"Cannot start detection: {e}")
    finally:
        cv2.destroyAllWindows()


def main():
    """Main application function."""
    parser = argparse.ArgumentParser(description='Live object detection overlay')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--display', action='store_true',
                        help='Open a local preview window')
    parser.add_argument('--autostart', action='store_true',
                        help='Start detection as soon as the model is loaded')
    parser.add_argument('--no-web', action='store_true',
                        help='Do not start the web interface')
    args = parser.parse_args()

    raw_config = load_config(args.config)

    is_valid, error_msg = validate_config(raw_config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    setup_logging(raw_config['log_path'], raw_config['log_level'])

    config = Config.from_dict(raw_config)
    if args.autostart:
        config.loop.autostart = True
    if args.no_web:
        config.web.enabled = False

    logging.info("Starting live detection")

    ctx = build_context(config)
    try:
        ctx.source.open()

        if config.web.enabled:
            start_web_server(ctx)

        if args.display:
            run_display(ctx)
        else:
            if not config.web.enabled:
                # Headless: the log is the only result display
                ctx.loop.add_listener(
                    lambda batch: logging.info(f"Predictions seq={batch.sequence}: {batch.labels()}")
                )
            # Run until interrupted
            threading.Event().wait()
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    finally:
        ctx.shutdown()
        logging.info("Live detection stopped")


if __name__ == "__main__":
    main()
