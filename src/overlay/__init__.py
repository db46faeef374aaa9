"""
Overlay drawing for detection results.
"""

from .renderer import DrawnDetection, LabelLayout, OverlayRenderer, label_layout, measure_text

__all__ = [
    "DrawnDetection",
    "LabelLayout",
    "OverlayRenderer",
    "label_layout",
    "measure_text",
]
