"""
Processing pipeline orchestration for imageoptimize.

`run` folds an ordered list of operation descriptors over one image value.
`process_tree` fans that pipeline out over a directory tree with
multiprocessing support.
"""

import asyncio
import re
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set
from urllib.parse import unquote

from tqdm.auto import tqdm

from .errors import ImageProcessingError, ParamsInvalid
from .image_io import load_image
from .image_processing import (
    CropProcess,
    GrayProcess,
    LoaderProcess,
    OptimProcess,
    ResizeProcess,
    WatermarkPosition,
    WatermarkProcess,
)
from .images import ProcessImage
from .utils import build_jobs, collect_sources, ensure_dir, format_duration, format_size

PROCESS_LOAD = "load"
PROCESS_RESIZE = "resize"
PROCESS_OPTIM = "optim"
PROCESS_CROP = "crop"
PROCESS_GRAY = "gray"
PROCESS_WATERMARK = "watermark"
PROCESS_DIFF = "diff"

UINT_RE = re.compile(r"[0-9]+")
INT_RE = re.compile(r"-?[0-9]+")

DEFAULT_QUALITY = 80
DEFAULT_SPEED = 3
MAX_QUALITY = 100
MAX_SPEED = 10


def _parse_uint(value: str, name: str, upper: Optional[int] = None) -> int:
    """Parse an unsigned integer argument, raising ParamsInvalid on failure."""
    if not isinstance(value, str) or not UINT_RE.fullmatch(value):
        raise ParamsInvalid(f"{name} should be an unsigned integer, got {value!r}")
    n = int(value)
    if upper is not None and n > upper:
        raise ParamsInvalid(f"{name} should be in 0-{upper}, got {n}")
    return n


def _parse_int(value: str, name: str) -> int:
    if not isinstance(value, str) or not INT_RE.fullmatch(value):
        raise ParamsInvalid(f"{name} should be an integer, got {value!r}")
    return int(value)


async def run(tasks: Sequence[Sequence[str]]) -> ProcessImage:
    """
    Run image processing tasks in order.

    Task descriptors:
        ["load", "data", "format hint"?]
        ["resize", "width", "height"]
        ["crop", "x", "y", "width", "height"]
        ["gray"]
        ["watermark", "url", "position"?, "margin left"?, "margin top"?]
        ["optim", "format", "quality", "speed"]
        ["diff"]

    Unknown task names are skipped. Any invalid argument aborts the whole run.

    Args:
        tasks: Ordered operation descriptors

    Returns:
        The final ProcessImage
    """
    img = ProcessImage()
    for params in tasks:
        if not params:
            continue
        task, args = params[0], list(params[1:])

        if task == PROCESS_LOAD:
            if not args:
                raise ParamsInvalid("load: data is required")
            ext = args[1] if len(args) >= 2 else ""
            loaded = await LoaderProcess(args[0], ext).process(img)
            # the snapshot is taken once per run, on the first load
            original = img.original if img.original is not None else loaded.pixels.copy()
            img = replace(loaded, original=original)

        elif task == PROCESS_RESIZE:
            if len(args) < 2:
                raise ParamsInvalid("resize: width and height are required")
            width = _parse_uint(args[0], "width")
            height = _parse_uint(args[1], "height")
            img = await ResizeProcess(width, height).process(img)

        elif task == PROCESS_GRAY:
            img = await GrayProcess().process(img)

        elif task == PROCESS_CROP:
            if len(args) < 4:
                raise ParamsInvalid("crop: x, y, width and height are required")
            x = _parse_uint(args[0], "x")
            y = _parse_uint(args[1], "y")
            width = _parse_uint(args[2], "width")
            height = _parse_uint(args[3], "height")
            img = await CropProcess(x, y, width, height).process(img)

        elif task == PROCESS_WATERMARK:
            if not args:
                raise ParamsInvalid("watermark: url is required")
            try:
                url = unquote(args[0], errors="strict")
            except UnicodeDecodeError as e:
                raise ParamsInvalid(f"watermark: url is not valid utf-8, {e}") from e
            position = WatermarkPosition.RIGHT_BOTTOM
            if len(args) > 1:
                position = WatermarkPosition.parse(args[1])
            margin_left = _parse_int(args[2], "margin left") if len(args) > 2 else 0
            margin_top = _parse_int(args[3], "margin top") if len(args) > 3 else 0
            watermark = await load_image(url)
            img = await WatermarkProcess(watermark.pixels, position, margin_left, margin_top).process(img)

        elif task == PROCESS_OPTIM:
            if len(args) != 3:
                raise ParamsInvalid("optim: format, quality and speed are required")
            output_type = args[0]
            quality = _parse_uint(args[1], "quality", MAX_QUALITY) if args[1] else DEFAULT_QUALITY
            speed = _parse_uint(args[2], "speed", MAX_SPEED) if args[2] else DEFAULT_SPEED
            img = await OptimProcess(output_type, quality, speed).process(img)

        elif task == PROCESS_DIFF:
            img = replace(img, diff=img.get_diff())

    return img


def run_sync(tasks: Sequence[Sequence[str]]) -> ProcessImage:
    """Blocking wrapper around `run` for worker processes and scripts."""
    return asyncio.run(run(tasks))


def process_one(src_path: str, dst_path: str, quality: int) -> Dict[str, Any]:
    """
    Optimize a single image file into `dst_path`.

    The output format is taken from the destination extension.

    Args:
        src_path: Source image path (as string for multiprocessing)
        dst_path: Destination path
        quality: Quality for the destination format

    Returns:
        Result dict with size, original size, percent and diff, or {"error": ...}
    """
    start = time.perf_counter()
    output_type = Path(dst_path).suffix.lstrip(".")
    tasks = [
        [PROCESS_LOAD, f"file://{src_path}"],
        [PROCESS_OPTIM, output_type, str(quality), "0"],
        [PROCESS_DIFF],
    ]
    try:
        img = run_sync(tasks)
        buf = img.get_buffer()
        dst = Path(dst_path)
        ensure_dir(dst)
        dst.write_bytes(buf)
    except (ImageProcessingError, OSError) as e:
        return {"error": f"{src_path}: {e}", "src": src_path, "dst": dst_path}

    size = len(buf)
    return {
        "src": src_path,
        "dst": dst_path,
        "size": size,
        "original_size": img.original_size,
        "percent": size * 100 // img.original_size if img.original_size else 0,
        "diff": img.diff,
        "duration_ms": int((time.perf_counter() - start) * 1000),
    }


def _report(res: Dict[str, Any]):
    if "error" in res:
        print(f"[ERR] {res['error']}")
        return
    print(f"[OK] {res['dst']}: {format_size(res['size'])} {res['percent']}%({res['diff']:.2f}) "
          f"{format_duration(res['duration_ms'])}")


def process_tree(
        source_root: Path,
        output_root: Path,
        extensions: Set[str],
        convert: Dict[str, List[str]],
        qualities: Dict[str, int],
        workers: int = 1,
        show_progress: bool = True,
) -> List[Dict[str, Any]]:
    """
    Optimize every matching image under `source_root`.

    Args:
        source_root: Root directory to search
        output_root: Root directory for outputs (may equal source_root)
        extensions: File extensions to process, without the dot
        convert: Source format -> extra target formats (e.g. {'png': ['avif']})
        qualities: Per-format qualities ('avif', 'webp', 'png', 'jpeg')
        workers: Number of parallel workers
        show_progress: Show progress bar

    Returns:
        List of result dicts
    """
    files = collect_sources(source_root, extensions)
    jobs = build_jobs(files, source_root, output_root, convert, qualities)
    total = len(jobs)
    print(f"[INFO] Discovered {len(files)} image(s), {total} job(s). Processing with {workers} worker(s)...")

    use_bar = show_progress and total > 0
    pbar = tqdm(total=total, unit="img") if use_bar else None

    results: List[Dict[str, Any]] = []

    def _collect(res: Dict[str, Any]):
        _report(res)
        if pbar is not None:
            pbar.update(1)
        results.append(res)

    if workers <= 1:
        for job in jobs:
            _collect(process_one(job.src, job.dst, job.quality))
    else:
        with ProcessPoolExecutor(max_workers=workers) as ex:
            futs = [ex.submit(process_one, job.src, job.dst, job.quality) for job in jobs]
            for fut in as_completed(futs):
                _collect(fut.result())

    if pbar is not None:
        pbar.close()

    done = sum(1 for r in results if "error" not in r)
    failed = total - done
    print("\n=== Summary ===")
    print(f"Source root: {source_root}")
    print(f"Output root: {output_root}")
    print(f"Processed:   {done}  |  Failed: {failed}")

    return results
