from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[1]
    src_dir = project_root / "src"
    sys.path.insert(0, str(src_dir))


@pytest.fixture
def solid():
    """Factory for a single-color raster."""
    from pixel_mcp.raster import Raster

    def make(width: int, height: int, color=(255, 0, 0, 255)):
        return Raster(width, height, fill=color)

    return make


@pytest.fixture
def write_png():
    """Save a raster as PNG and return the path."""
    from pixel_mcp.raster import save_raster

    def write(raster, path: Path) -> Path:
        return save_raster(raster, path)

    return write
