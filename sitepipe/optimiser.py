"""
Image tasks: recompress JPEG/PNG, derive AVIF or WebP, optimise SVG.

Rasters go through Pillow (AVIF needs Pillow 11.3+). SVGs are handed to
the svgo CLI, which must be on PATH or passed with --svgo-bin.
"""

from __future__ import annotations

import concurrent.futures as cf
import json
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from PIL import Image

from .config import BuildConfig
from .paths import RASTER_EXTS, VECTOR_EXTS, map_src_to_dest, replace_ext

SVGO_CONFIG_TEMPLATE = "module.exports = {{ plugins: {plugins} }};\n"


class ToolNotFoundError(RuntimeError):
    pass


def find_svgo_bin(explicit: Optional[str] = None) -> str:
    candidates = []
    if explicit:
        candidates.append(explicit)
    candidates += ["svgo"]
    for exe in candidates:
        found = shutil.which(exe)
        if found:
            return found
    raise ToolNotFoundError("Could not find svgo. Install it (npm i -g svgo) or pass --svgo-bin")


def needs_processing(src: Path, dst: Path, overwrite: bool) -> bool:
    if overwrite or not dst.exists():
        return True
    return src.stat().st_mtime > dst.stat().st_mtime


def ensure_dir(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def has_alpha(im: Image.Image) -> bool:
    return ("A" in im.mode) or (im.info.get("transparency") is not None)


def collect_images(img_dir: Path) -> List[Path]:
    if not img_dir.is_dir():
        return []
    exts = RASTER_EXTS | VECTOR_EXTS
    return sorted(p for p in img_dir.rglob("*") if p.is_file() and p.suffix.lower() in exts)


def _tmp_path(dst: Path) -> Path:
    return dst.with_name(f".{dst.name}.tmp")


def _save_atomic(im: Image.Image, dst: Path, fmt: str, **params) -> None:
    # Watchers on dist must never see a half-written file
    ensure_dir(dst)
    tmp = _tmp_path(dst)
    try:
        im.save(tmp, fmt, **params)
        os.replace(tmp, dst)
    finally:
        if tmp.exists():
            tmp.unlink()


# ---------- Encoders ----------

def compress_raster(src: Path, dst: Path, config: BuildConfig) -> None:
    ext = src.suffix.lower()
    with Image.open(src) as im:
        if ext in (".jpg", ".jpeg"):
            out = im if im.mode in ("RGB", "L") else im.convert("RGB")
            _save_atomic(out, dst, "JPEG", quality=config.jpeg_quality, optimize=True, progressive=True)
        elif ext == ".png":
            out = im
            if config.png_quality < 100 and im.mode != "P":
                # Palette quantisation, the lossy part of PNG compression
                colors = max(2, round(256 * config.png_quality / 100))
                out = im.convert("RGBA").quantize(colors=colors, method=Image.Quantize.FASTOCTREE)
            _save_atomic(out, dst, "PNG", optimize=True)
        else:
            raise ValueError(f"not a raster source: {src.name}")


def derive_image(src: Path, dst: Path, config: BuildConfig) -> None:
    with Image.open(src) as im:
        out = im
        if im.mode not in ("RGB", "RGBA"):
            out = im.convert("RGBA" if has_alpha(im) else "RGB")
        if config.img_format == "avif":
            _save_atomic(out, dst, "AVIF", quality=config.avif_quality, subsampling=config.avif_subsampling)
        else:
            _save_atomic(out, dst, "WEBP", quality=config.webp_quality, method=6)


def optimise_svg(src: Path, dst: Path, config: BuildConfig) -> None:
    svgo = find_svgo_bin(config.svgo_bin)
    ensure_dir(dst)
    tmp = _tmp_path(dst)
    with tempfile.TemporaryDirectory() as tmp_dir:
        cfg_file = Path(tmp_dir) / "svgo.config.cjs"
        cfg_file.write_text(SVGO_CONFIG_TEMPLATE.format(plugins=json.dumps(config.svgo_plugins)), encoding="utf-8")
        proc = subprocess.run(
            [svgo, "--config", str(cfg_file), "-i", str(src), "-o", str(tmp)],
            capture_output=True,
            text=True,
        )
    if proc.returncode != 0:
        if tmp.exists():
            tmp.unlink()
        raise RuntimeError(proc.stderr.strip() or proc.stdout.strip() or f"svgo exited with {proc.returncode}")
    os.replace(tmp, dst)


# ---------- Main processing ----------

def process_image(src: Path, config: BuildConfig, overwrite: bool = False) -> List[str]:
    """
    Build every output of one source image. Returns status lines; errors
    are reported as ERR lines rather than raised.
    """
    ext = src.suffix.lower()
    rel = config.rel(src)
    try:
        dst = map_src_to_dest(src, config.src_img_root, config.dest_img_root)
        if ext in VECTOR_EXTS:
            if not needs_processing(src, dst, overwrite):
                return [f"SKIP  {rel} up to date"]
            optimise_svg(src, dst, config)
            return [f"DONE  {rel} -> {config.rel(dst)}"]

        if ext not in RASTER_EXTS:
            return [f"SKIP  Unsupported: {rel}"]

        status = []
        derived = replace_ext(dst, config.derived_ext)
        for out, encode in ((dst, compress_raster), (derived, derive_image)):
            if needs_processing(src, out, overwrite):
                encode(src, out, config)
                status.append(f"DONE  {rel} -> {config.rel(out)}")
            else:
                status.append(f"SKIP  {config.rel(out)} up to date")
        return status
    except Exception as e:
        return [f"ERR   {rel}: {e}"]


def optimise_images(config: BuildConfig, overwrite: bool = False) -> int:
    """Process the whole source image tree. Returns the number of errors."""
    images = collect_images(config.src_img_root)
    if not images:
        print(f"SKIP  No images in {config.rel(config.src_img_root)}")
        return 0

    errors = 0
    with cf.ThreadPoolExecutor(max_workers=max(1, config.threads)) as ex:
        futures = [ex.submit(process_image, p, config, overwrite) for p in images]
        for fut in cf.as_completed(futures):
            for status in fut.result():
                print(status)
                if status.startswith("ERR"):
                    errors += 1
    return errors
