import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Optional

from .analyzer import analyze
from .antialias import PixelGrid, apply_suggestions, suggest
from .config import get_settings
from .dither import DitherPattern, fill_dither
from .errors import PixelEngineError
from .quantizer import QuantizeAlgorithm, quantize, remap
from .raster import Raster, Region, load_raster, save_raster
from .shading import LightDirection, ShadingStyle, shade

SUPPORTED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp"}

logger = logging.getLogger(__name__)


def _iter_input_files(input_path: Path, recursive: bool) -> list[Path]:
    if input_path.is_file():
        return [input_path]
    if not input_path.is_dir():
        return []

    if recursive:
        candidates = (path for path in input_path.rglob("*") if path.is_file())
    else:
        candidates = (path for path in input_path.iterdir() if path.is_file())

    files = [path for path in candidates if path.suffix.lower() in SUPPORTED_EXTENSIONS]
    return sorted(files)


def _parse_region(value: str) -> Region:
    try:
        x, y, w, h = (int(part) for part in value.split(","))
        return Region(x, y, w, h)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"region must be x,y,width,height ({e})") from e


def _output_path(args: argparse.Namespace, file_path: Path, suffix: str) -> Path:
    output_dir = Path(args.output_dir) if args.output_dir else file_path.parent
    if args.recursive and Path(args.input).is_dir():
        rel = file_path.relative_to(Path(args.input))
        output_dir = output_dir / rel.parent
    return output_dir / f"{file_path.stem}{suffix}.png"


def _run_quantize(args: argparse.Namespace, raster: Raster, file_path: Path) -> dict[str, Any]:
    result = quantize(
        raster,
        args.colors,
        args.algorithm,
        preserve_transparency=not args.include_transparent,
        max_samples=args.max_samples,
        config=get_settings().engine,
    )
    payload = result.model_dump()
    if args.remap:
        palette = [(int(c[1:3], 16), int(c[3:5], 16), int(c[5:7], 16)) for c in result.palette]
        out_path = save_raster(remap(raster, palette, dither=args.dither), _output_path(args, file_path, "_quantized"))
        payload["output_path"] = str(out_path)
    return payload


def _run_analyze(args: argparse.Namespace, raster: Raster, file_path: Path) -> dict[str, Any]:
    analysis = analyze(
        raster,
        args.width,
        args.height,
        palette_size=args.palette_size,
        brightness_levels=args.levels,
        edge_threshold=args.edge_threshold,
        config=get_settings().engine,
    )
    payload = analysis.model_dump(by_alias=True)
    if not args.grids:
        payload["brightness_map"].pop("grid", None)
        payload["edge_map"].pop("grid", None)
    return payload


def _run_dither(args: argparse.Namespace, raster: Raster, file_path: Path) -> dict[str, Any]:
    region = args.region or Region(0, 0, max(1, raster.width), max(1, raster.height))
    fill = fill_dither(region, args.color1, args.color2, args.pattern, args.density)
    written = raster.paste(fill, region.x, region.y)
    out_path = save_raster(raster, _output_path(args, file_path, "_dithered"))
    return {"output_path": str(out_path), "pixels_written": written}


def _run_antialias(args: argparse.Namespace, raster: Raster, file_path: Path) -> dict[str, Any]:
    suggestions = suggest(
        PixelGrid.from_raster(raster),
        args.region,
        threshold=args.threshold,
        use_palette=bool(args.palette),
        palette=args.palette or (),
    )
    payload: dict[str, Any] = {"suggestions": [s.model_dump() for s in suggestions]}
    if args.apply:
        out_path = save_raster(apply_suggestions(raster, suggestions), _output_path(args, file_path, "_antialiased"))
        payload["output_path"] = str(out_path)
    return payload


def _run_shade(args: argparse.Namespace, raster: Raster, file_path: Path) -> dict[str, Any]:
    result = shade(raster, args.light, args.intensity, args.style, hue_shift=not args.no_hue_shift)
    out_path = save_raster(result.raster, _output_path(args, file_path, "_shaded"))
    return {
        "output_path": str(out_path),
        "generated_colors": result.generated_colors,
        "regions_shaded": result.regions_shaded,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pixel-mcp-cli", description="Run the pixel engine over image files.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--input", required=True, help="Input file or directory path.")
        p.add_argument("--output-dir", help="Output directory path (default: next to each input).")
        p.add_argument(
            "--recursive",
            action="store_true",
            help="Recursively scan subdirectories when input is a directory.",
        )

    p = sub.add_parser("quantize", help="Reduce images to a small palette.")
    add_common(p)
    p.add_argument("--colors", type=int, default=16, help="Target palette size, 2-256 (default: 16).")
    p.add_argument("--algorithm", choices=[a.value for a in QuantizeAlgorithm], default="median_cut")
    p.add_argument("--include-transparent", action="store_true", help="Quantize fully transparent pixels too.")
    p.add_argument("--max-samples", type=int, default=None, help="Subsample to at most this many pixels.")
    p.add_argument("--remap", action="store_true", help="Write a copy mapped onto the palette.")
    p.add_argument("--dither", action="store_true", help="Use Floyd-Steinberg when remapping.")
    p.set_defaults(handler=_run_quantize)

    p = sub.add_parser("analyze", help="Analyze reference images.")
    add_common(p)
    p.add_argument("--width", type=int, required=True, help="Target width for the brightness map.")
    p.add_argument("--height", type=int, required=True, help="Target height for the brightness map.")
    p.add_argument("--palette-size", type=int, default=16, help="Palette size, 5-32 (default: 16).")
    p.add_argument("--levels", type=int, default=5, help="Brightness levels, 2-10 (default: 5).")
    p.add_argument("--edge-threshold", type=int, default=30, help="Sobel threshold, 0-255 (default: 30).")
    p.add_argument("--grids", action="store_true", help="Include brightness and edge grids in the output.")
    p.set_defaults(handler=_run_analyze)

    p = sub.add_parser("dither", help="Fill a region with a dither pattern.")
    add_common(p)
    p.add_argument("--region", type=_parse_region, default=None, help="x,y,width,height (default: whole image).")
    p.add_argument("--color1", required=True, help="First color, #RRGGBB or #RRGGBBAA.")
    p.add_argument("--color2", required=True, help="Second color, #RRGGBB or #RRGGBBAA.")
    p.add_argument("--pattern", choices=[d.value for d in DitherPattern], default="bayer_4x4")
    p.add_argument("--density", type=float, default=0.5, help="Share of color2, 0-1 (default: 0.5).")
    p.set_defaults(handler=_run_dither)

    p = sub.add_parser("antialias", help="Suggest corner pixels for diagonal stair steps.")
    add_common(p)
    p.add_argument("--region", type=_parse_region, default=None, help="x,y,width,height (default: whole image).")
    p.add_argument("--threshold", type=int, default=128, help="Detection threshold, 0-255 (default: 128).")
    p.add_argument("--palette", nargs="*", help="Snap suggestions to these hex colors.")
    p.add_argument("--apply", action="store_true", help="Write a copy with suggestions applied.")
    p.set_defaults(handler=_run_antialias)

    p = sub.add_parser("shade", help="Add shadows and highlights to flat regions.")
    add_common(p)
    p.add_argument("--light", choices=[d.value for d in LightDirection], default="top_left")
    p.add_argument("--intensity", type=float, default=0.5, help="Shading strength, 0-1 (default: 0.5).")
    p.add_argument("--style", choices=[s.value for s in ShadingStyle], default="cell")
    p.add_argument("--no-hue-shift", action="store_true", help="Keep shadow and highlight hues unchanged.")
    p.set_defaults(handler=_run_shade)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else get_settings().log_level_value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"ERROR: input path does not exist: {input_path}", file=sys.stderr)
        return 1

    files = _iter_input_files(input_path, recursive=args.recursive)
    if not files:
        print(
            f"ERROR: no supported image files found in: {input_path} "
            f"(supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))})",
            file=sys.stderr,
        )
        return 1

    if args.output_dir:
        Path(args.output_dir).mkdir(parents=True, exist_ok=True)

    handler: Callable[[argparse.Namespace, Raster, Path], dict[str, Any]] = args.handler
    processed = 0
    succeeded = 0
    failed = 0

    for file_path in files:
        processed += 1
        try:
            raster = load_raster(file_path)
            result: Optional[dict[str, Any]] = handler(args, raster, file_path)
            print(json.dumps({"input_path": str(file_path), **(result or {})}, default=str))
            succeeded += 1
        except PixelEngineError as e:
            failed += 1
            print(f"ERROR: {file_path.name}: [{e.error_code}] {e}", file=sys.stderr)
        except Exception as e:
            failed += 1
            logger.debug("failed to process %s", file_path, exc_info=True)
            print(f"ERROR: failed to process {file_path.name}: {e}", file=sys.stderr)

    print(f"Processed: {processed} | Succeeded: {succeeded} | Failed: {failed}")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
