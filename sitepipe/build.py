"""Build tasks: Sass, HTML, JS, images and the full dist rebuild."""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import sass

from .config import BuildConfig
from .optimiser import ensure_dir, optimise_images
from .paths import map_src_to_dest


SASS_EXTS = {".scss", ".sass"}

GLOB_CHARS_RE = re.compile(r"[*?\[]")
# @use "components/**";  @forward "base/*";  @import "pages/*.scss";
GLOB_RULE_RE = re.compile(
    r"^(?P<indent>[ \t]*)@(?:use|forward|import)\s+(?P<q>[\"'])(?P<pattern>[^\"']*[*?\[][^\"']*)(?P=q)[^;\n]*;",
    re.MULTILINE,
)


class BuildError(RuntimeError):
    pass


# Transient and editor artefacts to ignore
TRANSIENT_SUFFIXES = {".swp", ".swx", ".tmp", ".bak"}


def is_transient(p: Path) -> bool:
    n = p.name
    return (
        n.startswith(".#")         # Emacs lockfiles
        or n.endswith("~")         # backup files
        or n == ".DS_Store"
        or p.suffix.lower() in TRANSIENT_SUFFIXES
    )


def is_partial(p: Path) -> bool:
    return p.name.startswith("_")


# =======================
# Copy tasks
# =======================

def html_files(config: BuildConfig) -> List[Path]:
    if not config.src_root.is_dir():
        return []
    return sorted(
        p for p in config.src_root.rglob("*.html")
        if p.is_file() and "node_modules" not in p.parts and not is_transient(p)
    )


def copy_file(src: Path, src_root: Path, dest_root: Path, config: BuildConfig) -> Path:
    dst = map_src_to_dest(src, src_root, dest_root)
    ensure_dir(dst)
    shutil.copy2(src, dst)
    print(f"DONE  {config.rel(src)} -> {config.rel(dst)}")
    return dst


def copy_html_file(src: Path, config: BuildConfig) -> Path:
    return copy_file(src, config.src_root, config.dist_root, config)


def copy_js_file(src: Path, config: BuildConfig) -> Path:
    return copy_file(src, config.src_js_root, config.dest_js_root, config)


def copy_html(config: BuildConfig) -> List[Path]:
    return [copy_html_file(p, config) for p in html_files(config)]


def copy_js(config: BuildConfig) -> List[Path]:
    if not config.src_js_root.is_dir():
        return []
    return [copy_js_file(p, config) for p in sorted(config.src_js_root.rglob("*")) if p.is_file() and not is_transient(p)]


# =======================
# Sass
# =======================

def css_target(scss: Path, config: BuildConfig) -> Path:
    return map_src_to_dest(scss, config.src_sass_root, config.dest_css_root).with_suffix(".css")


def sass_glob(pattern: str, base_dirs: Sequence[Path]) -> List[Path]:
    """Stylesheets matched by an import glob; "dir/**" means everything below dir."""
    if pattern.endswith("**"):
        pattern += "/*"
    for base in base_dirs:
        hits = sorted(p for p in base.glob(pattern) if p.is_file() and p.suffix.lower() in SASS_EXTS)
        if hits:
            return hits
    return []


def expand_sass_globs(source: str, base_dirs: Sequence[Path], exclude: Optional[Path] = None) -> str:
    """
    Rewrite @use/@forward/@import rules whose URL is a glob into one @import
    per matching file. libsass has no module system, so a globbed @use is
    loaded the way @import loads it.
    """
    def repl(m: re.Match) -> str:
        hits = [p for p in sass_glob(m.group("pattern"), base_dirs) if p != exclude]
        return "\n".join(f'{m.group("indent")}@import "{p.as_posix()}";' for p in hits)

    return GLOB_RULE_RE.sub(repl, source)


def glob_importer(base_dirs: Sequence[Path]) -> Callable[[str, str], Optional[List[Tuple[str]]]]:
    """libsass importer resolving globbed @import rules inside partials."""
    def importer(path: str, prev: str) -> Optional[List[Tuple[str]]]:
        if not GLOB_CHARS_RE.search(path):
            return None
        dirs = list(base_dirs)
        if prev and Path(prev).is_file():
            dirs.insert(0, Path(prev).parent)
        return [(str(p),) for p in sass_glob(path, dirs)]
    return importer


def compile_sass_file(scss: Path, config: BuildConfig) -> Path:
    base_dirs = [scss.parent, config.src_sass_root]
    options = dict(
        include_paths=[str(d) for d in base_dirs],
        importers=[(0, glob_importer(base_dirs))],
        output_style="expanded",
    )
    source = scss.read_text(encoding="utf-8")
    expanded = expand_sass_globs(source, base_dirs, exclude=scss)
    if expanded == source:
        css = sass.compile(filename=str(scss), **options)
    else:
        css = sass.compile(string=expanded, **options)
    dst = css_target(scss, config)
    ensure_dir(dst)
    dst.write_text(css, encoding="utf-8")
    print(f"DONE  {config.rel(scss)} -> {config.rel(dst)}")
    return dst


def compile_sass(config: BuildConfig) -> List[Path]:
    """
    Compile every entry stylesheet. Partials (_name.scss) are only pulled
    in through @use/@import, so any change recompiles all entries.
    """
    root = config.src_sass_root
    if not root.is_dir():
        return []
    entries = sorted(p for p in root.rglob("*.scss") if p.is_file() and not is_partial(p))
    return [compile_sass_file(p, config) for p in entries]


# =======================
# Orchestration
# =======================

def clean(config: BuildConfig) -> None:
    dist = config.dist_root
    if dist.exists():
        shutil.rmtree(dist)
        print(f"DEL   {config.rel(dist)}")


def images(config: BuildConfig, overwrite: bool = False) -> None:
    errors = optimise_images(config, overwrite=overwrite)
    if errors:
        raise BuildError(f"{errors} image task(s) failed")


def build(config: BuildConfig) -> None:
    """Fresh dist: clean, then html, css, js and images in order."""
    clean(config)
    copy_html(config)
    compile_sass(config)
    copy_js(config)
    images(config, overwrite=True)
