"""
Keep the destination image tree in step with the source tree.

- prune_images: full scan, deletes every output whose source is gone
- delete_outputs_for: reacts to a single removed source file (watch mode)
- clean_images: drops compressed rasters except a keep list
"""

from __future__ import annotations

import concurrent.futures as cf
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .config import BuildConfig
from .paths import (
    DERIVED_EXTS,
    IMAGE_EXTS,
    RASTER_EXTS,
    VECTOR_EXTS,
    map_src_to_dest,
    relative_key,
    relative_to_root,
    replace_ext,
)

CLEAN_EXTS = {".jpg", ".png"}

Callback = Callable[[Optional[BaseException]], None]


def safe_unlink(target_path: Path) -> bool:
    """Delete a file. Returns False if it was already gone."""
    try:
        Path(target_path).unlink()
        return True
    except FileNotFoundError:
        return False


def delete_all(paths: Iterable[Path], threads: int = 4) -> List[Path]:
    """
    Unlink every path concurrently and wait for all of them to settle.
    Returns the paths actually removed. The first real error is raised
    after the rest have finished; deletions already done are kept.
    """
    paths = list(paths)
    if not paths:
        return []

    removed: List[Path] = []
    first_error: Optional[BaseException] = None
    with cf.ThreadPoolExecutor(max_workers=max(1, threads)) as ex:
        futures = {ex.submit(safe_unlink, p): p for p in paths}
        for fut in cf.as_completed(futures):
            try:
                if fut.result():
                    removed.append(futures[fut])
            except OSError as e:
                if first_error is None:
                    first_error = e

    if first_error is not None:
        raise first_error
    return sorted(removed)


# ---------- Orphan scan ----------

def is_orphan(dest_file: Path, src_root: Path, dest_root: Path) -> bool:
    rel = relative_to_root(dest_file, dest_root)
    ext = rel.suffix.lower()

    if ext in DERIVED_EXTS:
        # Any raster with the same stem keeps the derived file alive
        return not any((src_root / rel.with_suffix(e)).exists() for e in (".jpg", ".jpeg", ".png"))
    if ext in RASTER_EXTS or ext in VECTOR_EXTS:
        return not (src_root / rel).exists()
    return False


def find_orphans(config: BuildConfig) -> List[Path]:
    dest_root = config.dest_img_root
    if not dest_root.is_dir():
        return []
    return sorted(
        p for p in dest_root.rglob("*")
        if p.is_file() and p.suffix.lower() in IMAGE_EXTS
        and is_orphan(p, config.src_img_root, dest_root)
    )


def prune_images(config: BuildConfig) -> List[Path]:
    """Delete destination images whose source no longer exists."""
    removed = delete_all(find_orphans(config), config.threads)
    for p in removed:
        print(f"DEL   {config.rel(p)}")
    return removed


# ---------- Unlink hook ----------

def outputs_for(source_path: Path, is_vector: bool, config: BuildConfig) -> List[Path]:
    """Destination files that exist only because of source_path."""
    dest_main = map_src_to_dest(source_path, config.src_img_root, config.dest_img_root)
    if is_vector:
        return [dest_main]
    return [dest_main, replace_ext(dest_main, ".avif"), replace_ext(dest_main, ".webp")]


def delete_outputs_for(
    source_path: Path,
    is_vector: bool,
    config: BuildConfig,
    callback: Optional[Callback] = None,
) -> Optional[BaseException]:
    """
    Remove the outputs of a deleted source file. The callback, if given,
    is called exactly once with the error or None; the same value is
    returned.
    """
    error: Optional[BaseException] = None
    try:
        for p in delete_all(outputs_for(source_path, is_vector, config), config.threads):
            print(f"DEL   {config.rel(p)}")
    except (OSError, ValueError) as e:
        error = e
    if callback is not None:
        callback(error)
    return error


def outputs_under(source_dir: Path, config: BuildConfig) -> List[Path]:
    """Every image output mirrored below a source directory."""
    dest_dir = map_src_to_dest(source_dir, config.src_img_root, config.dest_img_root)
    if not dest_dir.is_dir():
        return []
    return sorted(p for p in dest_dir.rglob("*") if p.is_file() and p.suffix.lower() in IMAGE_EXTS)


def delete_outputs_under(
    source_dir: Path,
    config: BuildConfig,
    callback: Optional[Callback] = None,
) -> Optional[BaseException]:
    """
    Directory counterpart of delete_outputs_for, for a source directory
    removed or moved away in one event. Same callback contract.
    """
    error: Optional[BaseException] = None
    try:
        for p in delete_all(outputs_under(source_dir, config), config.threads):
            print(f"DEL   {config.rel(p)}")
    except (OSError, ValueError) as e:
        error = e
    if callback is not None:
        callback(error)
    return error


# ---------- Selective cleanup ----------

def clean_images(config: BuildConfig, keep: Optional[Iterable[str]] = None) -> List[Path]:
    """
    Delete every .jpg/.png under the destination image root except the
    relative paths listed in keep (defaults to config.clean_keep).
    """
    keep_set = {k.replace("\\", "/") for k in (config.clean_keep if keep is None else keep)}
    dest_root = config.dest_img_root
    if not dest_root.is_dir():
        return []

    targets = [
        p for p in dest_root.rglob("*")
        if p.is_file() and p.suffix.lower() in CLEAN_EXTS
        and relative_key(p, dest_root) not in keep_set
    ]
    removed = delete_all(targets, config.threads)
    for p in removed:
        print(f"DEL   {config.rel(p)}")
    return removed
