"""
Photo-Datestamp Entry Point&入口点
"""

import logging
import sys
from pathlib import Path

import click

if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

from photo_datestamp.core import ConfigManager, FontFace, process_directory

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO):
    """配置日志输出到标准输出"""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@click.command()
@click.option(
    "--path",
    "input_path",
    default="./",
    show_default=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory containing the JPEG photos to stamp.",
)
def main(input_path: Path):
    """Program main entry&程序主入口"""
    setup_logging()

    config_manager = ConfigManager()
    font_face = FontFace.load(config_manager.get_font_path())

    results = process_directory(input_path, font_face)
    for error in results["errors"]:
        logger.warning(error)


if __name__ == "__main__":
    main()
