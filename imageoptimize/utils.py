"""
Utility functions for imageoptimize.

File discovery, output path construction, batch job planning and
human-readable formatting for the batch layer.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

# Source extensions the batch layer knows how to pick up
IMG_EXTS: Set[str] = {"jpeg", "jpg", "png"}

# --convert choices: name -> (source format, target format)
CONVERT_FORMATS: Dict[str, Optional[tuple]] = {
    "jpeg-avif": ("jpeg", "avif"),
    "jpeg-webp": ("jpeg", "webp"),
    "png-avif": ("png", "avif"),
    "png-webp": ("png", "webp"),
    "disable": None,
}
DEFAULT_CONVERT = ["jpeg-avif", "jpeg-webp", "png-avif", "png-webp"]

KB = 1024
MB = KB * 1024


@dataclass
class Job:
    src: str
    dst: str
    quality: int


def ensure_dir(path: Path):
    """Ensure parent directory exists for given path."""
    path.parent.mkdir(parents=True, exist_ok=True)


def parse_list(value, allowed: Iterable[str], name: str) -> List[str]:
    """
    Split a comma-separated option (or a list of them) and validate each item.

    Raises:
        ValueError: an item is not in `allowed`
    """
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    out: List[str] = []
    allowed = set(allowed)
    for item in items:
        for part in str(item).split(","):
            part = part.strip().lower()
            if not part:
                continue
            if part not in allowed:
                raise ValueError(f"invalid {name}: {part!r} (choose from {', '.join(sorted(allowed))})")
            if part not in out:
                out.append(part)
    return out


def convert_map(names: Iterable[str]) -> Dict[str, List[str]]:
    """Group --convert choices by source format: ['png-avif'] -> {'png': ['avif']}."""
    targets: Dict[str, List[str]] = {}
    for name in names:
        pair = CONVERT_FORMATS[name]
        if pair is None:
            continue
        source, target = pair
        targets.setdefault(source, []).append(target)
    return targets


def collect_sources(input_root: Path, allow_exts: Set[str]) -> List[Path]:
    """
    Collect all source image files from input directory.

    Args:
        input_root: Root directory to search
        allow_exts: Extensions without the dot (e.g. {'png', 'jpg'})

    Returns:
        Sorted list of source file paths
    """
    files: List[Path] = []
    for p in input_root.rglob("*"):
        if p.is_dir():
            continue
        if p.suffix.lower().lstrip(".") in allow_exts:
            files.append(p)
    return sorted(files)


def dest_path_for(src_path: Path, input_root: Path, out_root: Path) -> Path:
    """Mirror `src_path` from under `input_root` to under `out_root`."""
    if input_root == out_root:
        return src_path
    return out_root / src_path.relative_to(input_root)


def source_type(path: Path) -> str:
    return "png" if path.suffix.lower() == ".png" else "jpeg"


def quality_for(target_ext: str, qualities: Dict[str, int]) -> int:
    """Pick the quality for a destination extension; jpeg's is the fallback."""
    ext = target_ext.lower().lstrip(".")
    if ext in ("avif", "webp", "png"):
        return qualities[ext]
    return qualities["jpeg"]


def build_jobs(files: Iterable[Path], input_root: Path, out_root: Path,
               convert: Dict[str, List[str]], qualities: Dict[str, int]) -> List[Job]:
    """
    Plan one job per conversion target plus one same-format job per source file.

    Args:
        files: Source files
        input_root: Source root
        out_root: Output root
        convert: Source format -> extra target formats
        qualities: Per-format qualities

    Returns:
        List of Jobs
    """
    jobs: List[Job] = []
    for f in files:
        target = dest_path_for(f, input_root, out_root)
        targets = [target.with_suffix(f".{ext}") for ext in convert.get(source_type(f), [])]
        targets.append(target)
        for t in targets:
            jobs.append(Job(src=str(f), dst=str(t), quality=quality_for(t.suffix, qualities)))
    return jobs


def format_size(size: int) -> str:
    """Human-readable size: 12b, 3kb, 1mb."""
    if size >= MB:
        return f"{size // MB}mb"
    if size >= KB:
        return f"{size // KB}kb"
    return f"{size}b"


def format_duration(ms: int) -> str:
    """Human-readable duration: 850ms, 2s."""
    if ms < 1000:
        return f"{ms}ms"
    return f"{ms // 1000}s"
