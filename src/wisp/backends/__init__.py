"""
Render backends the engine can drive.
"""

from .base import RenderBackend
from .headless import HeadlessBackend
from .image import ImageBackend

BACKENDS = {
    HeadlessBackend.name: HeadlessBackend,
    ImageBackend.name: ImageBackend,
}

__all__ = ["RenderBackend", "HeadlessBackend", "ImageBackend", "BACKENDS"]
