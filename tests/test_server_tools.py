from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from pixel_mcp.config import Settings
from pixel_mcp.raster import Raster, load_raster, save_raster
from pixel_mcp.server import (
    WorkspaceContext,
    call_tool,
    list_tools,
    tool_analyze_palette_harmonies,
    tool_analyze_reference,
    tool_apply_auto_shading,
    tool_apply_palette_shading,
    tool_doctor,
    tool_draw_with_dither,
    tool_quantize_palette,
    tool_sort_palette,
    tool_suggest_antialiasing,
)

RED = (255, 0, 0, 255)


@pytest.fixture
def context(tmp_path: Path) -> WorkspaceContext:
    settings = Settings.from_env(workspace_override=tmp_path / "ws")
    settings.ensure_directories()
    return WorkspaceContext(settings=settings)


@pytest.fixture
def sprite(context: WorkspaceContext) -> Path:
    raster = Raster(4, 4, fill=RED)
    raster.set(0, 0, (0, 0, 255, 255))
    return save_raster(raster, context.settings.workspace_root / "sprite.png")


@pytest.mark.asyncio
async def test_rejects_external_input_path(context: WorkspaceContext, tmp_path: Path) -> None:
    external = tmp_path / "external" / "sprite.png"
    result = await tool_quantize_palette(context, {"input_path": str(external)})

    assert result.get("error_code") == "PATH_OUTSIDE_WORKSPACE"
    assert result.get("field") == "input_path"


@pytest.mark.asyncio
async def test_allows_external_input_path_when_opted_in(context: WorkspaceContext, tmp_path: Path) -> None:
    external = tmp_path / "external" / "sprite.png"
    result = await tool_quantize_palette(context, {"input_path": str(external), "allow_external_paths": True})

    assert result.get("error_code") == "FILE_NOT_FOUND"


@pytest.mark.asyncio
async def test_rejects_external_output_path(context: WorkspaceContext, sprite: Path, tmp_path: Path) -> None:
    result = await tool_apply_auto_shading(
        context, {"input_path": str(sprite), "output_path": str(tmp_path / "elsewhere.png")}
    )

    assert result.get("error_code") == "PATH_OUTSIDE_WORKSPACE"
    assert result.get("field") == "output_path"


@pytest.mark.asyncio
async def test_undecodable_image(context: WorkspaceContext) -> None:
    bogus = context.settings.workspace_root / "bogus.png"
    bogus.write_bytes(b"not an image")
    result = await tool_analyze_reference(context, {"input_path": "bogus.png", "target_width": 4, "target_height": 4})

    assert result.get("error_code") == "IMAGE_DECODE_FAILED"


@pytest.mark.asyncio
async def test_invalid_arguments_raise_validation_error(context: WorkspaceContext, sprite: Path) -> None:
    with pytest.raises(ValidationError):
        await tool_quantize_palette(context, {"input_path": str(sprite), "target_colors": 500})


@pytest.mark.asyncio
async def test_quantize_writes_remapped_copy(context: WorkspaceContext, sprite: Path) -> None:
    result = await tool_quantize_palette(context, {"input_path": "sprite.png", "target_colors": 4, "remap": True})

    assert result["status"] == "success"
    assert sorted(result["palette"]) == ["#0000FF", "#FF0000"]
    assert result["original_color_count"] == 2
    out = Path(result["output_path"])
    assert out == context.settings.workspace_root / "sprite_quantized.png"
    assert load_raster(out) == load_raster(sprite)


@pytest.mark.asyncio
async def test_quantize_without_remap_writes_nothing(context: WorkspaceContext, sprite: Path) -> None:
    result = await tool_quantize_palette(context, {"input_path": str(sprite), "algorithm": "OCTREE"})
    assert result["algorithm_used"] == "octree"
    assert "output_path" not in result


@pytest.mark.asyncio
async def test_analyze_reference_can_drop_grids(context: WorkspaceContext, sprite: Path) -> None:
    args = {"input_path": str(sprite), "target_width": 2, "target_height": 2, "include_grids": False}
    result = await tool_analyze_reference(context, args)

    assert result["status"] == "success"
    assert "grid" not in result["brightness_map"]
    assert "grid" not in result["edge_map"]
    assert result["metadata"]["scale_factor"] == pytest.approx(0.5)
    assert {p["color"] for p in result["palette"]} == {"#FF0000", "#0000FF"}


@pytest.mark.asyncio
async def test_draw_with_dither_clips_region(context: WorkspaceContext, sprite: Path) -> None:
    args = {
        "input_path": str(sprite),
        "region": {"x": 2, "y": 2, "width": 4, "height": 4},
        "color1": "#000000",
        "color2": "#FFFFFF",
        "pattern": "checkerboard",
        "density": 1.0,
    }
    result = await tool_draw_with_dither(context, args)

    assert result["pixels_written"] == 4
    out = load_raster(Path(result["output_path"]))
    assert out.get(3, 3) == (255, 255, 255, 255)
    assert out.get(1, 1) == RED


@pytest.mark.asyncio
async def test_suggest_antialiasing_applies(context: WorkspaceContext) -> None:
    raster = Raster(2, 2)
    for x, y in ((0, 0), (1, 0), (1, 1)):
        raster.set(x, y, RED)
    path = save_raster(raster, context.settings.workspace_root / "step.png")

    result = await tool_suggest_antialiasing(context, {"input_path": str(path), "auto_apply": True})

    assert result["total_suggestions"] == 1
    assert result["suggestions"][0]["direction"] == "diagonal_ne"
    assert result["applied"] is True
    assert load_raster(Path(result["output_path"])).get(0, 1) == (127, 0, 0, 127)


@pytest.mark.asyncio
async def test_apply_auto_shading_reports_colors(context: WorkspaceContext) -> None:
    path = save_raster(Raster(8, 8, fill=RED), context.settings.workspace_root / "block.png")
    result = await tool_apply_auto_shading(context, {"input_path": str(path), "intensity": 1.0})

    assert result["regions_shaded"] == 1
    assert len(result["generated_colors"]) == 2
    assert Path(result["output_path"]).name == "block_shaded.png"


@pytest.mark.asyncio
async def test_apply_palette_shading_limits_to_region(context: WorkspaceContext) -> None:
    path = save_raster(Raster(6, 6, fill=RED), context.settings.workspace_root / "block.png")
    args = {
        "input_path": str(path),
        "palette": ["#000000", "#FFFFFF"],
        "region": {"x": 2, "y": 2, "width": 8, "height": 8},
        "style": "Hard",
    }
    result = await tool_apply_palette_shading(context, args)

    assert result["pixels_shaded"] == 16
    assert result["style"] == "hard"
    assert Path(result["output_path"]).name == "block_palette_shaded.png"
    out = load_raster(Path(result["output_path"]))
    assert out.get(1, 1) == RED
    assert out.get(5, 5) in {(0, 0, 0, 255), (255, 255, 255, 255)}


@pytest.mark.asyncio
async def test_apply_palette_shading_requires_palette(context: WorkspaceContext, sprite: Path) -> None:
    with pytest.raises(ValidationError):
        await tool_apply_palette_shading(context, {"input_path": str(sprite), "palette": []})


@pytest.mark.asyncio
async def test_sort_palette_tool(context: WorkspaceContext) -> None:
    result = await tool_sort_palette(context, {"palette": ["#FFFFFF", "#000000"], "method": "LUMINANCE"})
    assert result == {
        "status": "success",
        "method": "luminance",
        "ascending": True,
        "palette": ["#000000", "#FFFFFF"],
    }


@pytest.mark.asyncio
async def test_palette_harmonies(context: WorkspaceContext) -> None:
    result = await tool_analyze_palette_harmonies(context, {"palette": ["#FF0000", "#00FFFF"]})
    assert result["status"] == "success"
    assert len(result["complementary"]) == 1


@pytest.mark.asyncio
async def test_doctor_returns_shape(context: WorkspaceContext) -> None:
    result = await tool_doctor(context)

    assert result["status"] in ("ok", "warning")
    assert "version" in result
    assert "python" in result
    assert "pillow" in result["dependencies"]
    assert result["workspace"]["root"]["exists"] is True
    assert any(f["code"] == "SAMPLING_DISABLED" for f in result["findings"])


@pytest.mark.asyncio
async def test_list_tools_exposes_workspace_root() -> None:
    tools = await list_tools()
    names = {t.name for t in tools}
    assert names == {
        "quantize_palette",
        "analyze_reference",
        "draw_with_dither",
        "suggest_antialiasing",
        "apply_auto_shading",
        "apply_palette_shading",
        "analyze_palette_harmonies",
        "sort_palette",
        "doctor",
    }
    for tool in tools:
        assert "workspace_root" in tool.inputSchema["properties"]


async def _call(name: str, arguments: dict) -> dict:
    content = await call_tool(name, arguments)
    return json.loads(content[0].text)


@pytest.mark.asyncio
async def test_call_tool_maps_engine_errors(context: WorkspaceContext, sprite: Path) -> None:
    root = str(context.settings.workspace_root)
    result = await _call("quantize_palette", {"workspace_root": root, "input_path": "sprite.png", "algorithm": "neuquant"})

    assert result["error_code"] == "UNKNOWN_ALGORITHM"
    assert result["field"] == "algorithm"


@pytest.mark.asyncio
async def test_call_tool_maps_validation_errors(context: WorkspaceContext) -> None:
    root = str(context.settings.workspace_root)
    result = await _call("draw_with_dither", {"workspace_root": root, "input_path": "x.png"})
    assert result["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_call_tool_unknown_tool(context: WorkspaceContext) -> None:
    result = await _call("sharpen", {"workspace_root": str(context.settings.workspace_root)})
    assert result["error_code"] == "UNKNOWN_TOOL"
