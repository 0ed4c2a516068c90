"""
Photo-Datestamp - 照片拍摄日期水印工具
"""

__version__ = "1.0"

from .core import (
    ConfigManager,
    FontFace,
    CaptureMetadata,
    Rotation,
    RenderPlan,
    WatermarkLabel,
    MetadataError,
    MetadataReader,
    GeometryPlanner,
    WatermarkRenderer,
    ImageProcessor,
    BatchProcessor,
    is_recent,
    process_directory,
    scan_images
)

__all__ = [
    'ConfigManager',
    'FontFace',
    'CaptureMetadata',
    'Rotation',
    'RenderPlan',
    'WatermarkLabel',
    'MetadataError',
    'MetadataReader',
    'GeometryPlanner',
    'WatermarkRenderer',
    'ImageProcessor',
    'BatchProcessor',
    'is_recent',
    'process_directory',
    'scan_images',
]
