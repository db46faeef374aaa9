"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


def _parse_color(value: Any, default: Tuple[int, int, int]) -> Tuple[int, int, int]:
    """
    Accept "#RRGGBB" strings or [B, G, R] lists and return a BGR tuple.

    Colors in the YAML are written the way designers write them (hex RGB);
    OpenCV wants BGR.
    """
    if value is None:
        return default
    if isinstance(value, str):
        hex_str = value.lstrip("#")
        if len(hex_str) != 6:
            raise ValueError(f"Color must be #RRGGBB, got {value!r}")
        r, g, b = (int(hex_str[i:i + 2], 16) for i in (0, 2, 4))
        return (b, g, r)
    if isinstance(value, (list, tuple)) and len(value) == 3:
        return tuple(int(c) for c in value)  # type: ignore[return-value]
    raise ValueError(f"Unsupported color value: {value!r}")


@dataclass
class CameraConfig:
    """Camera configuration."""
    backend: str = "opencv"
    device_id: Union[int, str] = 0
    resolution: List[int] = field(default_factory=lambda: [640, 480])
    fps: int = 30
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False
    buffer_size: int = 1
    max_retries: int = 3

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            backend=d.get("backend", "opencv"),
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [640, 480]),
            fps=d.get("fps", 30),
            rotate=d.get("rotate", 0) or 0,
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
            buffer_size=d.get("buffer_size", 1),
            max_retries=d.get("max_retries", 3),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
            "buffer_size": self.buffer_size,
            "max_retries": self.max_retries,
        }


@dataclass
class YoloConfig:
    """YOLO detector configuration."""
    model: str = "yolov8n.pt"
    conf_threshold: float = 0.5
    iou_threshold: float = 0.45
    classes: Optional[List[int]] = None
    class_name_overrides: Optional[Dict[int, str]] = None
    device: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "YoloConfig":
        overrides = d.get("class_name_overrides")
        return cls(
            model=d.get("model", "yolov8n.pt"),
            conf_threshold=float(d.get("conf_threshold", 0.5)),
            iou_threshold=float(d.get("iou_threshold", 0.45)),
            classes=d.get("classes"),
            # YAML keys arrive as str or int depending on quoting
            class_name_overrides={int(k): str(v) for k, v in overrides.items()} if overrides else None,
            device=d.get("device"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "model": self.model,
            "conf_threshold": self.conf_threshold,
            "iou_threshold": self.iou_threshold,
        }
        if self.classes is not None:
            d["classes"] = self.classes
        if self.class_name_overrides is not None:
            d["class_name_overrides"] = self.class_name_overrides
        if self.device is not None:
            d["device"] = self.device
        return d


@dataclass
class DetectionConfig:
    """Detection configuration."""
    backend: str = "yolo"
    yolo: YoloConfig = field(default_factory=YoloConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            backend=d.get("backend", "yolo"),
            yolo=YoloConfig.from_dict(d.get("yolo") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "yolo": self.yolo.to_dict(),
        }


@dataclass
class LoopConfig:
    """
    Detection loop scheduling.

    Attributes:
        interval_ms: Tick period in milliseconds.
        inference_timeout_s: Optional ceiling on one detector call. None disables it.
        autostart: Start detecting as soon as the model is ready.
    """
    interval_ms: int = 100
    inference_timeout_s: Optional[float] = None
    autostart: bool = False

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LoopConfig":
        return cls(
            interval_ms=d.get("interval_ms", 100),
            inference_timeout_s=d.get("inference_timeout_s"),
            autostart=d.get("autostart", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interval_ms": self.interval_ms,
            "inference_timeout_s": self.inference_timeout_s,
            "autostart": self.autostart,
        }


@dataclass
class OverlayConfig:
    """
    Overlay drawing style. Colors are BGR tuples.

    Attributes:
        box_color: Rectangle outline color.
        line_width: Rectangle outline thickness in pixels.
        label_color: Label background fill color.
        text_color: Label text color.
        font_scale: cv2.FONT_HERSHEY_SIMPLEX scale.
        text_thickness: Stroke thickness of the label text.
        label_height: Label background height in pixels.
        padding: Horizontal padding on each side of the label text.
        baseline_offset: Distance from label bottom to the text baseline.
    """
    box_color: Tuple[int, int, int] = (0, 255, 0)
    line_width: int = 2
    label_color: Tuple[int, int, int] = (0, 255, 0)
    text_color: Tuple[int, int, int] = (0, 0, 0)
    font_scale: float = 0.5
    text_thickness: int = 1
    label_height: int = 20
    padding: int = 5
    baseline_offset: int = 5

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OverlayConfig":
        defaults = cls()
        return cls(
            box_color=_parse_color(d.get("box_color"), defaults.box_color),
            line_width=d.get("line_width", defaults.line_width),
            label_color=_parse_color(d.get("label_color"), defaults.label_color),
            text_color=_parse_color(d.get("text_color"), defaults.text_color),
            font_scale=d.get("font_scale", defaults.font_scale),
            text_thickness=d.get("text_thickness", defaults.text_thickness),
            label_height=d.get("label_height", defaults.label_height),
            padding=d.get("padding", defaults.padding),
            baseline_offset=d.get("baseline_offset", defaults.baseline_offset),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "box_color": list(self.box_color),
            "line_width": self.line_width,
            "label_color": list(self.label_color),
            "text_color": list(self.text_color),
            "font_scale": self.font_scale,
            "text_thickness": self.text_thickness,
            "label_height": self.label_height,
            "padding": self.padding,
            "baseline_offset": self.baseline_offset,
        }


@dataclass
class WebConfig:
    """Web interface configuration."""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 5000
    stream_fps: int = 10

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(
            enabled=d.get("enabled", True),
            host=d.get("host", "0.0.0.0"),
            port=d.get("port", 5000),
            stream_fps=d.get("stream_fps", 10),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "host": self.host,
            "port": self.port,
            "stream_fps": self.stream_fps,
        }


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    camera: CameraConfig = field(default_factory=CameraConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    overlay: OverlayConfig = field(default_factory=OverlayConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log_path: str = "logs/live_detect.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            camera=CameraConfig.from_dict(d.get("camera") or {}),
            detection=DetectionConfig.from_dict(d.get("detection") or {}),
            loop=LoopConfig.from_dict(d.get("loop") or {}),
            overlay=OverlayConfig.from_dict(d.get("overlay") or {}),
            web=WebConfig.from_dict(d.get("web") or {}),
            log_path=d.get("log_path", "logs/live_detect.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary."""
        return {
            "camera": self.camera.to_dict(),
            "detection": self.detection.to_dict(),
            "loop": self.loop.to_dict(),
            "overlay": self.overlay.to_dict(),
            "web": self.web.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
