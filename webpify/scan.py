from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List

from .errors import EnvironmentCheckError


log = logging.getLogger(__name__)

SUPPORTED_EXTS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif"}


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTS


def iter_images(input_dir: Path) -> Iterable[Path]:
    """
    Yield every supported image under input_dir, recursively.

    Enumeration is best effort: an unreadable subdirectory is logged and
    skipped instead of aborting the scan. Symlinks to directories are not
    followed. Directories and files within a directory are visited in
    sorted order, so the output is stable between runs.
    """
    root = Path(input_dir)
    if not root.is_dir():
        raise EnvironmentCheckError(f"Input directory does not exist: {root}")

    def _on_error(err: OSError) -> None:
        log.debug("skipping unreadable entry %s: %s", err.filename, err)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            p = Path(dirpath) / name
            if not is_supported(p):
                continue
            try:
                if not p.is_file():
                    continue
            except OSError as e:
                log.debug("skipping %s: %s", p, e)
                continue
            yield p.absolute()


def scan_images(input_dir: Path) -> List[Path]:
    return list(iter_images(input_dir))
