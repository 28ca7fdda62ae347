"""Command-line entry point: sitepipe [options] [command]."""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

import sass

from . import build as tasks
from .config import DERIVED_FORMATS, BuildConfig, ConfigError, load_config
from .prune import clean_images, prune_images


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sitepipe",
        description="Build src/ into dist/: Sass, HTML, JS and images, with a live-reload dev server.",
    )
    parser.add_argument("--root", default=None, help="Project root containing src/ (default: $SITEPIPE_ROOT or .)")
    parser.add_argument("--config", default=None, help="JSON settings file (default: <root>/sitepipe.json if present)")
    parser.add_argument("--format", dest="img_format", choices=DERIVED_FORMATS, default=None,
                        help="Derived image format")
    parser.add_argument("--threads", type=int, default=None, help="Worker threads")
    parser.add_argument("--port", type=int, default=None, help="Dev server port")
    parser.add_argument("--svgo-bin", default=None, help='svgo binary, e.g. "node_modules/.bin/svgo"')
    parser.add_argument("--overwrite", action="store_true", help="Re-encode images even if up to date")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("dev", help="Build outputs, serve dist/ and watch src/ (default)")
    sub.add_parser("build", help="Clean dist/ and rebuild everything")
    sub.add_parser("clean", help="Delete dist/")
    sub.add_parser("images", help="Compress rasters, derive AVIF/WebP, optimise SVG")
    p_clean = sub.add_parser("clean-images", help="Delete .jpg/.png in the dist image tree except kept files")
    p_clean.add_argument("--keep", nargs="*", default=None, metavar="REL",
                         help="Paths relative to the dist image root to keep (default: clean_keep setting)")
    sub.add_parser("prune-images", help="Delete dist images whose source is gone")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "dev"
    return args


def run(args: argparse.Namespace, config: BuildConfig) -> int:
    cmd = args.command
    if cmd == "dev":
        from .watch import serve
        try:
            serve(config)
        except KeyboardInterrupt:
            pass
    elif cmd == "build":
        tasks.build(config)
    elif cmd == "clean":
        tasks.clean(config)
    elif cmd == "images":
        tasks.images(config, overwrite=args.overwrite)
    elif cmd == "clean-images":
        removed = clean_images(config, keep=args.keep)
        print(f"Removed {len(removed)} file(s)")
    elif cmd == "prune-images":
        removed = prune_images(config)
        print(f"Removed {len(removed)} orphan(s)")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(
            root=args.root,
            path=args.config,
            img_format=args.img_format,
            threads=args.threads,
            port=args.port,
            svgo_bin=args.svgo_bin,
        )
        return run(args, config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
    except (tasks.BuildError, OSError) as e:
        print(f"ERR   {e}", file=sys.stderr)
    except sass.CompileError as e:
        print(f"ERR   [SASS] {e}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
