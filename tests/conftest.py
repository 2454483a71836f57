# -*- coding: utf-8 -*-
import pytest
from PIL import Image

from resizeit.codecs import CodecInfo, CodecRegistry


def make_image(path, size=(80, 60), fmt=None, mode="RGB", color=(200, 40, 40), **save_kwargs):
    img = Image.new(mode, size, color)
    # A gradient so resampled outputs are not trivially uniform
    for x in range(0, size[0], 4):
        for y in range(size[1]):
            if mode == "RGB":
                img.putpixel((x, y), (x * 3 % 256, y * 4 % 256, 90))
            elif mode == "RGBA":
                img.putpixel((x, y), (x * 3 % 256, y * 4 % 256, 90, 128))
    img.save(str(path), format=fmt, **save_kwargs)
    return path


@pytest.fixture
def fake_registry():
    return CodecRegistry([
        CodecInfo(format="JPEG", mime_type="image/jpeg", extensions=("jpg", "jpeg", "jpe", "jfif")),
        CodecInfo(format="PNG", mime_type="image/png", extensions=("png",)),
    ])


@pytest.fixture(scope="session")
def pillow_registry():
    return CodecRegistry.from_pillow()


@pytest.fixture
def write_config(tmp_path):
    def _write(body, name="Configuration.xml"):
        path = tmp_path / name
        path.write_text(body, encoding="utf-8")
        return str(path)
    return _write
