"""
Camera package.

Canonical imports:
- `from camera.camera import create_frame_source`
- `from camera.base import FrameSource` (the contract the detection loop polls)
- `from camera.backends.opencv import OpenCVFrameSource` (USB + RTSP + files)
"""
