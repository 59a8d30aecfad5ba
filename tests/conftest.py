from pathlib import Path

import pytest
from PIL import Image

from webpify.settings import ConvertSettings


def make_image(path: Path, size=(64, 48), mode="RGB", fmt=None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    # A gradient so the encoders have something to compress.
    im = Image.linear_gradient("L").resize(size).convert(mode)
    if mode == "RGBA":
        im.putalpha(128)
    im.save(path, format=fmt)
    return path


def make_animated_gif(path: Path, frames: int = 2, size=(32, 32), duration=120, loop=0) -> Path:
    """loop=None writes no NETSCAPE block, i.e. a GIF that plays once."""
    path.parent.mkdir(parents=True, exist_ok=True)
    colors = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0)]
    images = [Image.new("RGB", size, colors[i % len(colors)]) for i in range(frames)]
    kwargs = {"duration": duration}
    if loop is not None:
        kwargs["loop"] = loop
    images[0].save(path, save_all=True, append_images=images[1:], **kwargs)
    return path


@pytest.fixture
def input_dir(tmp_path: Path) -> Path:
    d = tmp_path / "images"
    d.mkdir()
    return d


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "output"


@pytest.fixture
def settings(input_dir: Path, output_dir: Path) -> ConvertSettings:
    return ConvertSettings(input_dir=input_dir, output_dir=output_dir, quality=80, workers=2)


@pytest.fixture
def sample_tree(input_dir: Path) -> Path:
    """photo.jpg, logo.png, banner.gif (2 frames) and nested/deep.bmp"""
    make_image(input_dir / "photo.jpg", size=(120, 90))
    make_image(input_dir / "logo.png", mode="RGBA")
    make_animated_gif(input_dir / "banner.gif", frames=2)
    make_image(input_dir / "nested" / "deep.bmp")
    return input_dir
