"""
Live Detection - Detection Module

Asynchronous object detectors and the background model loader.
"""

from .base import Detector, ThreadedDetector
from .loader import create_detector, load_detector_async

__all__ = ['Detector', 'ThreadedDetector', 'create_detector', 'load_detector_async']
