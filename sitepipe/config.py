"""Build settings for the asset pipeline."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

# Optional environment override for the project root
SITE_ROOT = os.environ.get("SITEPIPE_ROOT", ".")

CONFIG_FILENAME = "sitepipe.json"
DERIVED_FORMATS = ("avif", "webp")

INT_FIELDS = ("jpeg_quality", "png_quality", "avif_quality", "webp_quality", "threads", "port")
STR_FIELDS = (
    "src_dir", "dist_dir", "sass_dir", "js_dir", "images_dir",
    "css_out", "js_out", "images_out", "img_format", "avif_subsampling", "host",
)
LIST_FIELDS = ("svgo_plugins", "clean_keep")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class BuildConfig:
    """Paths, encoder settings and server options for one project."""

    root: Path = Path(SITE_ROOT)
    src_dir: str = "src"
    dist_dir: str = "dist"

    sass_dir: str = "sass"
    js_dir: str = "js"
    images_dir: str = "images"
    css_out: str = "assets/css"
    js_out: str = "assets/js"
    images_out: str = "assets/images"

    # Derived image format: "avif" or "webp"
    img_format: str = "avif"
    jpeg_quality: int = 75
    png_quality: int = 75
    avif_quality: int = 70
    webp_quality: int = 75
    avif_subsampling: str = "4:2:0"

    threads: int = os.cpu_count() or 4
    svgo_bin: Optional[str] = None
    svgo_plugins: List[str] = field(default_factory=lambda: ["preset-default", "removeDimensions"])

    host: str = "localhost"
    port: int = 3000

    # Relative to the destination image root, forward slashes
    clean_keep: List[str] = field(default_factory=lambda: ["sora.jpg"])

    def __post_init__(self) -> None:
        for name in INT_FIELDS:
            value = getattr(self, name)
            # bool is an int subclass; true/false in JSON is still a mistake
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in STR_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ConfigError(f"{name} must be a string, got {value!r}")
        for name in LIST_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{name} must be a list of strings, got {value!r}")
        if self.svgo_bin is not None and not isinstance(self.svgo_bin, str):
            raise ConfigError(f"svgo_bin must be a string, got {self.svgo_bin!r}")
        if self.img_format not in DERIVED_FORMATS:
            raise ConfigError(f"img_format must be one of {DERIVED_FORMATS}, got {self.img_format!r}")
        object.__setattr__(self, "root", Path(self.root).resolve())

    @property
    def src_root(self) -> Path:
        return self.root / self.src_dir

    @property
    def dist_root(self) -> Path:
        return self.root / self.dist_dir

    @property
    def src_sass_root(self) -> Path:
        return self.src_root / self.sass_dir

    @property
    def src_js_root(self) -> Path:
        return self.src_root / self.js_dir

    @property
    def src_img_root(self) -> Path:
        return self.src_root / self.images_dir

    @property
    def dest_css_root(self) -> Path:
        return self.dist_root / self.css_out

    @property
    def dest_js_root(self) -> Path:
        return self.dist_root / self.js_out

    @property
    def dest_img_root(self) -> Path:
        return self.dist_root / self.images_out

    @property
    def derived_ext(self) -> str:
        return f".{self.img_format}"

    def rel(self, path: Path) -> str:
        """Path relative to the project root, for status lines."""
        try:
            return Path(path).relative_to(self.root).as_posix()
        except ValueError:
            return str(path)


def _read(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be an object")
    return data


def load_config(root: Optional[str] = None, path: Optional[str] = None, **overrides: Any) -> BuildConfig:
    """
    Build a config from defaults, then sitepipe.json (or an explicit file),
    then keyword overrides. None-valued overrides are ignored so argparse
    defaults can be passed straight through.
    """
    cfg = BuildConfig(root=Path(root) if root else Path(SITE_ROOT))

    cfg_path = Path(path) if path else cfg.root / CONFIG_FILENAME
    known = {f.name for f in fields(BuildConfig)}

    data: Dict[str, Any] = {}
    if cfg_path.is_file():
        data = _read(cfg_path)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"{cfg_path}: unknown keys {', '.join(unknown)}")
        # root in the file is relative to the file itself
        if "root" in data:
            data["root"] = (cfg_path.parent / data["root"]).resolve()
    elif path:
        raise ConfigError(f"config file not found: {cfg_path}")

    data.update({k: v for k, v in overrides.items() if v is not None})
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown settings {', '.join(unknown)}")
    return replace(cfg, **data) if data else cfg
