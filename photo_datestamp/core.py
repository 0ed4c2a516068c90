"""
Photo-Datestamp 核心处理模块
"""

import logging
import configparser
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Callable

from PIL import Image, ImageDraw, ImageFont
import piexif

logger = logging.getLogger(__name__)

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"
LABEL_DATE_PATTERN = "%Y-%m-%d"
WATERMARK_COLOR = (200, 100, 0)
RECENCY_WINDOW = timedelta(days=30 * 365)
JPEG_QUALITY = 100
MAX_WORKERS = 30
OUTPUT_DIR_NAME = "output"
JPEG_EXTENSIONS = {'.jpg', '.jpeg'}


class MetadataError(ValueError):
    """图片元数据容器无法解析"""


class ConfigManager:
    """配置管理器 - 使用INI格式"""

    DEFAULT_CONFIG = {
        "assets": {
            "font_file": "OpenSans-Bold.ttf"
        }
    }

    def __init__(self, config_path: str | Path | None = None):
        if config_path is None:
            self.config_path = Path.cwd() / "config.ini"
        else:
            self.config_path = Path(config_path)
        self._config: configparser.ConfigParser | None = None

    def load(self) -> dict:
        """加载配置，不存在则使用默认配置"""
        if self._config is not None:
            return self._to_dict()

        self._config = configparser.ConfigParser()

        if self.config_path.exists():
            try:
                self._config.read(self.config_path, encoding='utf-8')
                logger.info(f"配置文件已加载: {self.config_path}")
            except configparser.Error as e:
                logger.error(f"加载配置文件失败: {e}")
                self._config = configparser.ConfigParser()

        self._merge_defaults()
        return self._to_dict()

    def get_default(self) -> dict:
        """获取默认配置"""
        return {section: dict(values) for section, values in self.DEFAULT_CONFIG.items()}

    def get_font_path(self) -> Path:
        """获取字体文件路径，相对路径以配置文件所在目录为基准"""
        font_file = Path(self.load()['assets']['font_file'])
        if font_file.is_absolute():
            return font_file
        return self.config_path.parent / font_file

    def _merge_defaults(self):
        """合并默认配置（添加缺失项）"""
        for section, values in self.DEFAULT_CONFIG.items():
            if not self._config.has_section(section):
                self._config.add_section(section)
            for key, value in values.items():
                if not self._config.has_option(section, key):
                    self._config.set(section, key, value)

    def _to_dict(self) -> dict:
        return {section: dict(self._config.items(section)) for section in self._config.sections()}


@dataclass(frozen=True)
class FontFace:
    """进程级字体资源，启动时加载一次，各线程只读共享"""

    path: Path
    data: bytes = field(repr=False)

    @classmethod
    def load(cls, font_path: str | Path) -> "FontFace | None":
        """加载字体文件；失败时返回 None，之后所有水印绘制均跳过"""
        font_path = Path(font_path)
        try:
            data = font_path.read_bytes()
            ImageFont.truetype(BytesIO(data), 12)
        except (OSError, ValueError) as e:
            logger.error(f"加载字体失败 [{font_path}]: {e}，将不绘制水印")
            return None

        logger.info(f"字体已加载: {font_path}")
        return cls(font_path, data)

    def sized(self, size: float) -> ImageFont.FreeTypeFont:
        # FreeType 字体对象不跨线程共享，每次绘制单独创建
        return ImageFont.truetype(BytesIO(self.data), size)


@dataclass(frozen=True)
class CaptureMetadata:
    timestamp: datetime | None = None
    orientation: int = 0


class Rotation(Enum):
    NONE = 0
    CLOCKWISE = 90
    COUNTERCLOCKWISE = -90


@dataclass(frozen=True)
class RenderPlan:
    """单张图片的旋转与水印布局"""

    width: int
    height: int
    rotation: Rotation
    anchor_x: int
    anchor_y: int
    font_size: float

    @property
    def needs_rotation(self) -> bool:
        return self.rotation is not Rotation.NONE


def is_recent(timestamp: datetime, now: datetime | None = None) -> bool:
    """拍摄时间是否在30年以内（过滤相机默认时间等无效值）"""
    if now is None:
        now = datetime.now()
    return timestamp > now - RECENCY_WINDOW


@dataclass(frozen=True)
class WatermarkLabel:
    text: str
    color: tuple[int, int, int] = WATERMARK_COLOR

    @classmethod
    def from_timestamp(cls, timestamp: datetime | None,
                       now: datetime | None = None) -> "WatermarkLabel | None":
        """由拍摄时间生成水印文本；无时间或时间过旧时返回 None"""
        if timestamp is None or not is_recent(timestamp, now):
            return None
        return cls(timestamp.strftime(LABEL_DATE_PATTERN))


class MetadataReader:
    """EXIF 元数据读取器"""

    DATETIME_TAGS = (
        ("Exif", piexif.ExifIFD.DateTimeOriginal),
        ("Exif", piexif.ExifIFD.DateTimeDigitized),
        ("0th", piexif.ImageIFD.DateTime),
    )

    def read(self, stream: BinaryIO, name: str = "") -> CaptureMetadata:
        """从文件流读取拍摄时间与方向标签，读取后流位置复位到开头"""
        data = stream.read()
        stream.seek(0)

        if data[:2] != b"\xff\xd8":
            raise MetadataError(f"不是有效的JPEG文件: {name}")

        try:
            exif_dict = piexif.load(data)
        except Exception as e:
            raise MetadataError(f"EXIF解析失败 [{name}]: {e}") from e

        timestamp = self.get_timestamp(exif_dict, name)
        if timestamp is None:
            logger.info(f"未找到拍摄时间，跳过水印: {name}")

        orientation = self.get_orientation(exif_dict)
        if orientation is None:
            logger.info(f"方向标签缺失或无效，按不旋转处理: {name}")
            orientation = 0

        return CaptureMetadata(timestamp, orientation)

    def get_timestamp(self, exif_dict: dict, name: str = "") -> datetime | None:
        for ifd, tag in self.DATETIME_TAGS:
            value = exif_dict.get(ifd, {}).get(tag)
            if not value:
                continue
            if isinstance(value, bytes):
                value = value.decode('ascii', errors='ignore')
            try:
                return datetime.strptime(value.strip('\x00 '), EXIF_DATETIME_FORMAT)
            except ValueError:
                logger.debug(f"无法解析时间 [{name}]: {value!r}")
        return None

    def get_orientation(self, exif_dict: dict) -> int | None:
        value = exif_dict.get("0th", {}).get(piexif.ImageIFD.Orientation)
        if isinstance(value, int):
            return value
        return None


class GeometryPlanner:
    """根据像素尺寸与方向标签计算旋转方向、水印位置和字号"""

    # 6: 需顺时针旋转90°，8: 需逆时针旋转90°
    ROTATED_TAGS = {
        6: Rotation.CLOCKWISE,
        8: Rotation.COUNTERCLOCKWISE,
    }

    def plan(self, raw_width: int, raw_height: int, orientation: int) -> RenderPlan:
        if raw_width <= 0 or raw_height <= 0:
            raise ValueError(f"无效的图片尺寸: {raw_width}x{raw_height}")

        width, height = raw_width, raw_height
        rotation = Rotation.NONE
        # 以横幅存储、实为竖拍的照片
        if orientation in self.ROTATED_TAGS and raw_width > raw_height:
            width, height = raw_height, raw_width
            rotation = self.ROTATED_TAGS[orientation]

        if width > height:
            anchor_x = 5 * width // 6
            anchor_y = 9 * height // 10
            font_size = 140 * width / 6000
        else:
            anchor_x = 3 * width // 4
            anchor_y = 12 * height // 13
            font_size = 140 * width / 4000

        return RenderPlan(width, height, rotation, anchor_x, anchor_y, font_size)


class WatermarkRenderer:
    """水印渲染器"""

    def __init__(self, font_face: FontFace | None):
        self.font_face = font_face

    def render(self, image: Image.Image, x: int, y: int,
               label: WatermarkLabel, font_size: float) -> Image.Image:
        """在图片上直接绘制水印；字体未加载时原样返回"""
        if self.font_face is None:
            return image

        draw = ImageDraw.Draw(image)
        # 72 DPI 下 1pt = 1px，基线位于 y + 字号
        baseline = y + int(font_size)
        try:
            font = self.font_face.sized(font_size)
            draw.text((x, baseline), label.text, font=font, fill=label.color, anchor="ls")
        except (OSError, ValueError) as e:
            logger.error(f"绘制水印失败 [{label.text}]: {e}")

        return image


class ImageProcessor:
    """单张图片处理流程"""

    TRANSPOSE = {
        Rotation.CLOCKWISE: Image.Transpose.ROTATE_270,
        Rotation.COUNTERCLOCKWISE: Image.Transpose.ROTATE_90,
    }

    def __init__(self, font_face: FontFace | None = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.reader = MetadataReader()
        self.planner = GeometryPlanner()
        self.renderer = WatermarkRenderer(font_face)
        self.clock = clock

    def process(self, input_path: str | Path) -> bool:
        """处理单张图片，失败只记录日志，不影响其他图片"""
        input_path = Path(input_path)

        try:
            output_path = self.run(input_path)
        except Exception as e:
            logger.error(f"处理失败 [{input_path}]: {e}")
            return False

        logger.info(f"已生成图片: {output_path}")
        return True

    def run(self, input_path: Path) -> Path:
        with open(input_path, 'rb') as f:
            metadata = self.reader.read(f, input_path.name)
            image = Image.open(f)
            image.load()

        logger.info(f"拍摄时间: {metadata.timestamp} 方向: {metadata.orientation} [{input_path.name}]")

        plan = self.planner.plan(image.width, image.height, metadata.orientation)
        logger.debug(f"布局 [{input_path.name}]: {plan}")

        image = image.convert('RGB')
        if plan.needs_rotation:
            image = image.transpose(self.TRANSPOSE[plan.rotation])

        label = WatermarkLabel.from_timestamp(metadata.timestamp, self.clock())
        if label is not None:
            self.renderer.render(image, plan.anchor_x, plan.anchor_y, label, plan.font_size)
        elif metadata.timestamp is not None:
            logger.info(f"拍摄时间超过30年，跳过水印: {input_path.name}")

        return self.save(image, input_path)

    def save(self, image: Image.Image, input_path: Path) -> Path:
        """编码完成后再写入，失败时不留下残缺文件"""
        output_dir = input_path.parent / OUTPUT_DIR_NAME
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / input_path.name

        buffer = BytesIO()
        image.save(buffer, 'JPEG', quality=JPEG_QUALITY)
        output_path.write_bytes(buffer.getvalue())
        return output_path


class BatchProcessor:
    """批量处理引擎"""

    def __init__(self, processor: ImageProcessor, max_workers: int = MAX_WORKERS):
        self.processor = processor
        self.max_workers = max_workers

    def process_batch(
            self,
            image_paths: list[str],
            progress_callback: Callable[[int, int, str], None] | None = None
    ) -> dict:
        """并发处理图片，全部完成后返回统计结果"""
        results = {
            "success": 0,
            "failed": 0,
            "errors": []
        }

        total = len(image_paths)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {}
            for image_path in image_paths:
                logger.info(f"开始处理: {image_path}")
                futures[executor.submit(self.processor.process, image_path)] = Path(image_path)

            for done, future in enumerate(as_completed(futures), start=1):
                image_path = futures[future]

                if future.result():
                    results["success"] += 1
                else:
                    results["failed"] += 1
                    results["errors"].append(f"处理失败: {image_path.name}")

                if progress_callback:
                    progress_callback(done, total, image_path.name)

        logger.info(f"批处理完成: 成功 {results['success']}, 失败 {results['failed']}")
        return results


def scan_images(directory: str | Path) -> list[str]:
    """扫描目录中的JPEG图片（不递归子目录）"""
    directory = Path(directory)
    images = [
        path for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in JPEG_EXTENSIONS
    ]
    return [str(p) for p in sorted(images)]


def process_directory(directory: str | Path, font_face: FontFace | None = None,
                      progress_callback: Callable[[int, int, str], None] | None = None) -> dict:
    """处理目录下所有图片的便捷函数"""
    image_paths = scan_images(directory)
    logger.info(f"发现 {len(image_paths)} 张图片: {directory}")

    processor = ImageProcessor(font_face)
    return BatchProcessor(processor).process_batch(image_paths, progress_callback)
