"""Source to destination path mapping."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union

RASTER_EXTS = {".jpg", ".jpeg", ".png"}
DERIVED_EXTS = {".avif", ".webp"}
VECTOR_EXTS = {".svg"}
IMAGE_EXTS = RASTER_EXTS | DERIVED_EXTS | VECTOR_EXTS

IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|svg|avif|webp)$", re.IGNORECASE)

PathLike = Union[str, os.PathLike]


class PathEscapeError(ValueError):
    pass


def _normalise(path: PathLike) -> Path:
    # Only the platform's own separators; "\" is a legal filename character on POSIX
    text = os.fspath(path)
    if os.altsep:
        text = text.replace(os.altsep, os.sep)
    return Path(os.path.abspath(text))


def relative_to_root(file_path: PathLike, root: PathLike) -> Path:
    """Relative sub-path of file_path under root; raises if it escapes."""
    abs_file = _normalise(file_path)
    abs_root = _normalise(root)
    try:
        return abs_file.relative_to(abs_root)
    except ValueError:
        raise PathEscapeError(f"{abs_file} is not under {abs_root}") from None


def relative_key(file_path: PathLike, root: PathLike) -> str:
    """Forward-slash relative path, as used in keep lists."""
    return relative_to_root(file_path, root).as_posix()


def map_src_to_dest(file_path: PathLike, src_root: PathLike, dest_root: PathLike) -> Path:
    return _normalise(dest_root) / relative_to_root(file_path, src_root)


def replace_ext(target_path: PathLike, new_ext: str) -> Path:
    """Swap a known image extension for new_ext; other paths pass through."""
    return Path(IMAGE_EXT_RE.sub(new_ext, str(target_path)))
