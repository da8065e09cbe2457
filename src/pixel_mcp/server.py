"""
MCP server exposing the pixel engine.
Tools read and write ordinary image files inside a workspace directory.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import PIL
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from PIL import UnidentifiedImageError
from pydantic import BaseModel, ValidationError

from . import __version__
from .analyzer import analyze
from .antialias import PixelGrid, apply_suggestions, suggest
from .config import Settings, get_settings
from .dither import fill_dither
from .errors import PixelEngineError
from .harmony import analyze_harmonies, sort_palette
from .models import (
    AnalyzeRequest,
    AntialiasRequest,
    DitherRequest,
    HarmonyRequest,
    PaletteShadeRequest,
    QuantizeRequest,
    ShadeRequest,
    SortPaletteRequest,
)
from .quantizer import quantize, remap
from .raster import Raster, load_raster, save_raster
from .shading import shade, shade_with_palette

logger = logging.getLogger(__name__)
_logging_configured = False


def setup_logging(level: str = "INFO") -> None:
    global _logging_configured
    if _logging_configured:
        return

    root = logging.getLogger()
    if root.handlers:
        _logging_configured = True
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logging_configured = True


def error_response(error_code: str, message: str, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": message, "error_code": error_code, "message": message}
    payload.update(extra)
    return payload


def _is_within(root: Path, path: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def _resolve_workspace_path(
    value: Optional[Path | str],
    settings: Settings,
    *,
    allow_external_paths: bool,
    field_name: str,
    default: Optional[Path] = None,
) -> tuple[Optional[Path], Optional[dict[str, Any]]]:
    """
    Resolve a tool-provided path safely against workspace_root.

    - Expands `~`.
    - Resolves relative paths under `workspace_root`.
    - Returns a structured PATH_OUTSIDE_WORKSPACE error unless allow_external_paths is true.
    """
    if value is None or value == "":
        if default is None:
            return None, None
        path = default
    else:
        candidate = Path(value).expanduser()
        if not candidate.is_absolute():
            candidate = settings.workspace_root / candidate
        path = candidate

    resolved = path.resolve()
    workspace_root = settings.workspace_root.resolve()
    if not allow_external_paths and not _is_within(workspace_root, resolved):
        return None, error_response(
            "PATH_OUTSIDE_WORKSPACE",
            f"{field_name} must be inside workspace_root",
            field=field_name,
            path=str(resolved),
            workspace_root=str(workspace_root),
        )
    return resolved, None


def _load_input(path: Path) -> tuple[Optional[Raster], Optional[dict[str, Any]]]:
    if not path.exists():
        return None, error_response("FILE_NOT_FOUND", f"File not found: {path}", input_path=str(path))
    try:
        return load_raster(path), None
    except (UnidentifiedImageError, OSError) as e:
        return None, error_response("IMAGE_DECODE_FAILED", f"Could not decode image: {path} ({e})", input_path=str(path))


def _resolve_io(
    req: BaseModel,
    settings: Settings,
    suffix: Optional[str],
) -> tuple[Optional[Path], Optional[Path], Optional[dict[str, Any]]]:
    """Resolve input_path and, when `suffix` is given, output_path (default `<stem><suffix>.png`)."""
    allow = req.allow_external_paths
    input_path, err = _resolve_workspace_path(
        req.input_path, settings, allow_external_paths=allow, field_name="input_path"
    )
    if err:
        return None, None, err
    assert input_path is not None

    if suffix is None:
        return input_path, None, None

    default_out = input_path.with_name(f"{input_path.stem}{suffix}.png")
    output_path, err = _resolve_workspace_path(
        req.output_path,
        settings,
        allow_external_paths=allow,
        field_name="output_path",
        default=default_out,
    )
    if err:
        return None, None, err
    return input_path, output_path, None


@dataclass
class WorkspaceContext:
    settings: Settings


_contexts: dict[Path, WorkspaceContext] = {}


def _parse_workspace_root(args: dict[str, Any]) -> Optional[Path]:
    raw = args.get("workspace_root")
    if not raw:
        return None
    return Path(raw).expanduser().resolve()


def _get_context(workspace_root: Optional[Path]) -> WorkspaceContext:
    if workspace_root is None:
        settings = get_settings()
        settings.ensure_directories()
        key = settings.workspace_root.resolve()
    else:
        key = workspace_root.resolve()
        existing = _contexts.get(key)
        if existing:
            return existing
        settings = Settings.from_env(workspace_override=key)
        settings.ensure_directories()

    context = _contexts.get(key)
    if context is None:
        context = WorkspaceContext(settings=settings)
        _contexts[key] = context
    return context


def _schema(model: type[BaseModel]) -> dict[str, Any]:
    schema = model.model_json_schema()
    schema.setdefault("properties", {})["workspace_root"] = {
        "type": "string",
        "description": "Optional: Workspace root override",
    }
    return schema


server = Server("pixel-mcp")


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return [
        Tool(
            name="quantize_palette",
            description=(
                "Reduce an image to at most target_colors representative colors using median_cut, kmeans or octree. "
                "Optionally writes a copy remapped onto the palette, with Floyd-Steinberg dithering."
            ),
            inputSchema=_schema(QuantizeRequest),
        ),
        Tool(
            name="analyze_reference",
            description=(
                "Analyze a reference image: sorted palette, brightness map at the target size, edge map, "
                "rule-of-thirds guides, focal points and dithering-zone suggestions."
            ),
            inputSchema=_schema(AnalyzeRequest),
        ),
        Tool(
            name="draw_with_dither",
            description="Fill a region of an image with a two-color dither pattern (Bayer, checkerboard, textures, Floyd-Steinberg).",
            inputSchema=_schema(DitherRequest),
        ),
        Tool(
            name="suggest_antialiasing",
            description="Find diagonal stair steps and suggest blended corner pixels. Optionally apply them.",
            inputSchema=_schema(AntialiasRequest),
        ),
        Tool(
            name="apply_auto_shading",
            description="Add shadows and highlights to flat color regions based on a light direction and style.",
            inputSchema=_schema(ShadeRequest),
        ),
        Tool(
            name="apply_palette_shading",
            description=(
                "Shade a region using only the colors of a darkest-to-lightest palette, "
                "following a light direction with hard, smooth or pillow style."
            ),
            inputSchema=_schema(PaletteShadeRequest),
        ),
        Tool(
            name="analyze_palette_harmonies",
            description="Find complementary, triadic and analogous relationships and the temperature balance of a palette.",
            inputSchema=_schema(HarmonyRequest),
        ),
        Tool(
            name="sort_palette",
            description="Sort palette colors by hue, saturation, brightness or luminance.",
            inputSchema=_schema(SortPaletteRequest),
        ),
        Tool(
            name="doctor",
            description="Run environment diagnostics (workspace dirs, library versions) without touching any image.",
            inputSchema={
                "type": "object",
                "properties": {
                    "workspace_root": {"type": "string", "description": "Optional: Workspace root override"},
                },
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    setup_logging()

    t0 = time.perf_counter()
    arg_keys = sorted(arguments.keys())
    logger.info("tool_call start: name=%s keys=%s", name, arg_keys)

    try:
        workspace_root = _parse_workspace_root(arguments)
        context = _get_context(workspace_root)

        if name == "quantize_palette":
            result = await tool_quantize_palette(context, arguments)
        elif name == "analyze_reference":
            result = await tool_analyze_reference(context, arguments)
        elif name == "draw_with_dither":
            result = await tool_draw_with_dither(context, arguments)
        elif name == "suggest_antialiasing":
            result = await tool_suggest_antialiasing(context, arguments)
        elif name == "apply_auto_shading":
            result = await tool_apply_auto_shading(context, arguments)
        elif name == "apply_palette_shading":
            result = await tool_apply_palette_shading(context, arguments)
        elif name == "analyze_palette_harmonies":
            result = await tool_analyze_palette_harmonies(context, arguments)
        elif name == "sort_palette":
            result = await tool_sort_palette(context, arguments)
        elif name == "doctor":
            result = await tool_doctor(context)
        else:
            result = error_response("UNKNOWN_TOOL", f"Unknown tool: {name}")

        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        logger.info("tool_call end: name=%s elapsed_ms=%.1f", name, elapsed_ms)
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    except PixelEngineError as e:
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        logger.exception("tool_call error (PixelEngineError): name=%s elapsed_ms=%.1f", name, elapsed_ms)
        result = error_response(e.error_code, str(e), field=e.field)
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    except ValidationError as e:
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        logger.exception("tool_call error (ValidationError): name=%s elapsed_ms=%.1f", name, elapsed_ms)
        result = error_response("VALIDATION_ERROR", "Validation error", details=str(e))
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    except Exception as e:
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        logger.exception("tool_call error: name=%s elapsed_ms=%.1f", name, elapsed_ms)
        result = error_response("UNEXPECTED_EXCEPTION", str(e))
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


async def tool_quantize_palette(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Quantize an image and optionally write the remapped copy."""
    req = QuantizeRequest.model_validate(args)
    settings = context.settings
    input_path, output_path, err = _resolve_io(req, settings, "_quantized" if req.remap else None)
    if err:
        return err
    assert input_path is not None

    raster, err = _load_input(input_path)
    if err:
        return err
    assert raster is not None

    result = quantize(
        raster,
        req.target_colors,
        req.algorithm,
        preserve_transparency=req.preserve_transparency,
        max_samples=req.max_samples,
        config=settings.engine,
    )
    payload: dict[str, Any] = {"status": "success", "input_path": str(input_path), **result.model_dump()}

    if req.remap and output_path is not None:
        remapped = remap(raster, [_hex_rgb(c) for c in result.palette], dither=req.dither)
        save_raster(remapped, output_path)
        payload["output_path"] = str(output_path)
        payload["dithered"] = req.dither
    return payload


def _hex_rgb(value: str) -> tuple[int, int, int]:
    return int(value[1:3], 16), int(value[3:5], 16), int(value[5:7], 16)


async def tool_analyze_reference(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Analyze a reference image for palette, brightness, edges and composition."""
    req = AnalyzeRequest.model_validate(args)
    settings = context.settings
    input_path, _, err = _resolve_io(req, settings, None)
    if err:
        return err
    assert input_path is not None

    raster, err = _load_input(input_path)
    if err:
        return err
    assert raster is not None

    analysis = analyze(
        raster,
        req.target_width,
        req.target_height,
        palette_size=req.palette_size,
        brightness_levels=req.brightness_levels,
        edge_threshold=req.edge_threshold,
        config=settings.engine,
    )
    payload = analysis.model_dump(by_alias=True)
    if not req.include_grids:
        payload["brightness_map"].pop("grid", None)
        payload["edge_map"].pop("grid", None)
    return {"status": "success", "input_path": str(input_path), **payload}


async def tool_draw_with_dither(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Fill a region of the input image with a dither pattern."""
    req = DitherRequest.model_validate(args)
    settings = context.settings
    input_path, output_path, err = _resolve_io(req, settings, "_dithered")
    if err:
        return err
    assert input_path is not None and output_path is not None

    raster, err = _load_input(input_path)
    if err:
        return err
    assert raster is not None

    region = req.region.to_region()
    fill = fill_dither(region, req.color1, req.color2, req.pattern, req.density)
    written = raster.paste(fill, region.x, region.y)
    save_raster(raster, output_path)
    return {
        "status": "success",
        "input_path": str(input_path),
        "output_path": str(output_path),
        "pattern": req.pattern,
        "density": req.density,
        "region": req.region.model_dump(),
        "pixels_written": written,
    }


async def tool_suggest_antialiasing(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Suggest (and optionally apply) corner fills for diagonal stair steps."""
    req = AntialiasRequest.model_validate(args)
    settings = context.settings
    input_path, output_path, err = _resolve_io(req, settings, "_antialiased" if req.auto_apply else None)
    if err:
        return err
    assert input_path is not None

    raster, err = _load_input(input_path)
    if err:
        return err
    assert raster is not None

    region = req.region.to_region() if req.region else None
    suggestions = suggest(
        PixelGrid.from_raster(raster),
        region,
        threshold=req.threshold,
        use_palette=req.use_palette,
        palette=req.palette,
    )
    payload: dict[str, Any] = {
        "status": "success",
        "input_path": str(input_path),
        "suggestions": [s.model_dump() for s in suggestions],
        "total_suggestions": len(suggestions),
        "applied": False,
    }
    if req.auto_apply and output_path is not None:
        save_raster(apply_suggestions(raster, suggestions), output_path)
        payload["applied"] = True
        payload["output_path"] = str(output_path)
    return payload


async def tool_apply_auto_shading(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Shade flat regions and write the result."""
    req = ShadeRequest.model_validate(args)
    settings = context.settings
    input_path, output_path, err = _resolve_io(req, settings, "_shaded")
    if err:
        return err
    assert input_path is not None and output_path is not None

    raster, err = _load_input(input_path)
    if err:
        return err
    assert raster is not None

    result = shade(raster, req.light_direction, req.intensity, req.style, req.hue_shift)
    save_raster(result.raster, output_path)
    return {
        "status": "success",
        "input_path": str(input_path),
        "output_path": str(output_path),
        "light_direction": req.light_direction,
        "style": req.style,
        "generated_colors": result.generated_colors,
        "regions_shaded": result.regions_shaded,
    }


async def tool_apply_palette_shading(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Shade a region with palette colors only and write the result."""
    req = PaletteShadeRequest.model_validate(args)
    settings = context.settings
    input_path, output_path, err = _resolve_io(req, settings, "_palette_shaded")
    if err:
        return err
    assert input_path is not None and output_path is not None

    raster, err = _load_input(input_path)
    if err:
        return err
    assert raster is not None

    region = req.region.to_region() if req.region else None
    result = shade_with_palette(raster, req.palette, region, req.light_direction, req.intensity, req.style)
    save_raster(result.raster, output_path)
    return {
        "status": "success",
        "input_path": str(input_path),
        "output_path": str(output_path),
        "light_direction": req.light_direction,
        "style": req.style,
        "pixels_shaded": result.pixels_shaded,
    }


async def tool_sort_palette(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Sort palette colors by an HSL component."""
    req = SortPaletteRequest.model_validate(args)
    return {
        "status": "success",
        "method": req.method,
        "ascending": req.ascending,
        "palette": sort_palette(req.palette, req.method, req.ascending),
    }


async def tool_analyze_palette_harmonies(context: WorkspaceContext, args: dict[str, Any]) -> dict[str, Any]:
    """Analyze color-theory relationships in a palette."""
    req = HarmonyRequest.model_validate(args)
    return {"status": "success", **analyze_harmonies(req.palette).model_dump()}


async def tool_doctor(context: WorkspaceContext) -> dict[str, Any]:
    """Return environment diagnostics without processing an image."""
    settings = context.settings
    findings: list[dict[str, Any]] = []

    def add_finding(level: str, code: str, message: str) -> None:
        findings.append({"level": level, "code": code, "message": message})

    def dir_status(path: Path) -> dict[str, Any]:
        exists = path.exists()
        writable = os.access(str(path), os.W_OK) if exists else os.access(str(path.parent), os.W_OK)
        return {"path": str(path), "exists": exists, "writable": writable}

    try:
        workspace = {
            "root": dir_status(settings.workspace_root),
            "out": dir_status(settings.output_dir),
        }

        for key, info in workspace.items():
            if not info["exists"]:
                add_finding("warning", "WORKSPACE_DIR_MISSING", f"Workspace directory missing: {key} ({info['path']})")
            elif not info["writable"]:
                add_finding("warning", "WORKSPACE_DIR_NOT_WRITABLE", f"Workspace directory not writable: {key} ({info['path']})")

        if settings.engine.max_samples is None:
            add_finding("info", "SAMPLING_DISABLED", "Quantization clusters every pixel (set PIXEL_MCP_MAX_SAMPLES to cap).")

        status = "ok" if not any(f["level"] == "warning" for f in findings) else "warning"

        return {
            "status": status,
            "version": __version__,
            "python": {
                "version": sys.version.split()[0],
                "executable": sys.executable,
            },
            "dependencies": {
                "pillow": {"version": PIL.__version__},
            },
            "workspace": workspace,
            "engine": settings.engine.model_dump(),
            "findings": findings,
        }

    except Exception as e:
        logger.exception("doctor failed unexpectedly")
        return {
            "status": "warning",
            "version": __version__,
            "python": {"version": sys.version.split()[0], "executable": sys.executable},
            "findings": [
                {"level": "warning", "code": "DOCTOR_FAILED", "message": str(e)},
            ],
        }


async def run_server() -> None:
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    """Entry point."""
    setup_logging(get_settings().log_level)
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
