import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

from image_folder_classifier.lib import ImageFormat, ImageSample, setup_logger

logger = setup_logger(__name__)


def _sorted_entries(directory: Union[str, Path]) -> List[os.DirEntry]:
    with os.scandir(directory) as entries:
        return sorted(entries, key=lambda entry: entry.name)


def scan_image_folders(
    root: Union[str, Path],
    formats: Optional[Iterable[ImageFormat]] = None,
) -> List[ImageSample]:
    """
    List every file of every immediate subdirectory of ``root``.

    The subdirectory name is the label of each file it contains. Files placed
    directly under ``root`` and anything nested deeper than one level are
    ignored. Directories and files are visited in name order.

    Args:
        root: Directory whose subdirectories name the classes
        formats: Optional image formats to keep; every file is kept when omitted

    Returns:
        One ImageSample per file, with an absolute image path under ``root``;
        symbolic links are kept as links, not replaced by their targets

    Raises:
        OSError: if ``root`` is missing, not a directory or unreadable
    """
    root = Path(root)
    allowed = list(formats) if formats is not None else None

    samples: List[ImageSample] = []
    for directory in _sorted_entries(root):
        if not directory.is_dir():
            continue

        count = 0
        for entry in _sorted_entries(directory.path):
            if not entry.is_file():
                continue
            path = Path(entry.path)
            if allowed is not None and not any(fmt.matches(path) for fmt in allowed):
                logger.debug(f"Skipping {path}: not one of {[f.value for f in allowed]}")
                continue
            samples.append(
                ImageSample(image_path=str(path.absolute()), label=directory.name)
            )
            count += 1

        logger.debug(f"Found {count} files for label '{directory.name}'")

    logger.info(f"Scanned {len(samples)} images in {root}")
    return samples
