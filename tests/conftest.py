from pathlib import Path

import pytest
from PIL import Image

from sitepipe.config import BuildConfig


def touch(path: Path, data: bytes = b"x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def make_image(path: Path, size=(32, 24), mode="RGB", color=(200, 80, 40)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fmt = "PNG" if path.suffix.lower() == ".png" else "JPEG"
    if mode == "RGBA":
        color = color + (128,)
    Image.new(mode, size, color).save(path, fmt)
    return path


@pytest.fixture
def config(tmp_path):
    (tmp_path / "src" / "images").mkdir(parents=True)
    (tmp_path / "dist" / "assets" / "images").mkdir(parents=True)
    return BuildConfig(root=tmp_path, threads=2, img_format="webp")


@pytest.fixture
def src_img(config):
    return config.src_img_root


@pytest.fixture
def dist_img(config):
    return config.dest_img_root
