"""
Configuration and argument parsing for imageoptimize.

Handles YAML config files and command-line argument parsing.
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .utils import CONVERT_FORMATS, DEFAULT_CONVERT, IMG_EXTS

# Default paths
SCRIPT_DIR = Path(__file__).resolve().parent.parent
PRESETS_DIR = SCRIPT_DIR / "presets"

# Keys never written to a saved config
_UNSAVED_KEYS = {"source", "source_arg", "config", "save_config"}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load YAML config file and return dict of settings.

    Automatically searches in presets/ directory if file not found directly.

    Args:
        config_path: Path to config file or preset name

    Returns:
        Dict of configuration settings
    """
    p = Path(config_path)
    if not p.exists():
        preset_path = PRESETS_DIR / config_path
        if not preset_path.exists():
            preset_path = PRESETS_DIR / f"{config_path}.yaml"
        if preset_path.exists():
            p = preset_path
        else:
            print(f"[WARNING] Config file not found: {config_path}")
            return {}

    try:
        with open(p, "r") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        print(f"[WARNING] Failed to load config {p}: {e}")
        return {}
    print(f"[CONFIG] Loaded: {p}")
    return config if isinstance(config, dict) else {}


def save_config(config_path: str, args: argparse.Namespace):
    """
    Save current args to a YAML config file.

    Args:
        config_path: Path to save config file
        args: Parsed arguments namespace
    """
    config = {}
    for key, value in vars(args).items():
        if key in _UNSAVED_KEYS or value is None:
            continue
        config[key] = value

    try:
        p = Path(config_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w") as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        print(f"[ERROR] Failed to save config: {e}")
        return
    print(f"[CONFIG] Saved to: {p}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="imageoptimize",
        description=("Optimize jpeg/png images in a directory tree, optionally converting them "
                     "to avif/webp, and report size savings and perceptual difference."),
    )
    p.add_argument("source_arg", nargs="?", default=None, help="Source image directory.")
    p.add_argument("-s", "--source", type=str, default=None, help="Source image directory.")
    p.add_argument("--output", type=str, default=None, help="Output directory.")
    p.add_argument("-o", "--overwrite", action="store_true",
                   help="Write outputs over the source tree (output = source).")
    p.add_argument("-f", "--format", type=str, default=None,
                   help=f"Filter by image formats ({', '.join(sorted(IMG_EXTS))}); comma-separated. "
                        f"Default: all.")
    p.add_argument("--convert", type=str, default=None,
                   help=f"Convert to format ({', '.join(CONVERT_FORMATS)}); comma-separated. "
                        f"Default: {','.join(DEFAULT_CONVERT)}.")
    p.add_argument("--png-quality", type=int, default=90, help="PNG quality (default: 90).")
    p.add_argument("--jpeg-quality", type=int, default=80, help="JPEG quality (default: 80).")
    p.add_argument("--avif-quality", type=int, default=80, help="AVIF quality (default: 80).")
    p.add_argument("--webp-quality", type=int, default=80,
                   help="WEBP quality (default: 80, 100 means lossless).")
    p.add_argument("--workers", type=int, default=max(1, (os.cpu_count() or 2) // 2),
                   help="Parallel workers (default: half your CPUs).")
    p.add_argument("--no-progress", action="store_true", help="Disable progress bar.")
    p.add_argument("--debug", action="store_true", help="Enable debug logging.")
    p.add_argument("--config", type=str, default=None,
                   help="Load settings from YAML config file. Can be a path or preset name (e.g., 'web').")
    p.add_argument("--save-config", type=str, default=None,
                   help="Save current settings to YAML config file and exit.")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments with config file support.

    Supports two-pass parsing: loads config file first, then CLI args override.

    Args:
        argv: Argument list (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    p = build_parser()

    # First pass: only look for --config
    args_temp, _ = p.parse_known_args(argv)

    config_dict = load_config(args_temp.config) if args_temp.config else {}
    if config_dict:
        known = {action.dest for action in p._actions}
        p.set_defaults(**{k: v for k, v in config_dict.items() if k in known and k != "config"})

    # Second pass: CLI args override config
    args = p.parse_args(argv)

    if args.save_config:
        save_config(args.save_config, args)
        sys.exit(0)

    return args
