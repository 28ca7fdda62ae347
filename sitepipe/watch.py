"""Dev server: watch src/, rebuild the touched output, reload the browser."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

from livereload import Server
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .build import compile_sass, copy_html, copy_html_file, copy_js, copy_js_file, is_transient
from .config import BuildConfig
from .optimiser import collect_images, optimise_images, process_image
from .paths import RASTER_EXTS, VECTOR_EXTS
from .prune import delete_outputs_for, delete_outputs_under


def _is_under(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def run_task(name: str, fn: Callable[..., Any], *args: Any) -> bool:
    """Run one task, reporting failures instead of stopping the watcher."""
    try:
        fn(*args)
        return True
    except Exception as e:
        print(f"ERR   [{name}] {e}")
        return False


class SourceEventHandler(FileSystemEventHandler):
    """Routes watchdog events under src/ to the matching build task."""

    def __init__(self, config: BuildConfig) -> None:
        super().__init__()
        self.config = config

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.changed(Path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.changed(Path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self.removed_dir(Path(event.src_path))
        else:
            self.removed(Path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            # inotify reports a directory leaving the tree as one event
            self.removed_dir(Path(event.src_path))
            self.changed_dir(Path(event.dest_path))
        else:
            self.removed(Path(event.src_path))
            self.changed(Path(event.dest_path))

    def changed(self, path: Path) -> Optional[str]:
        """Rebuild whatever depends on path. Returns the task name run."""
        cfg = self.config
        ext = path.suffix.lower()
        if is_transient(path):
            return None

        if ext == ".scss" and _is_under(path, cfg.src_sass_root):
            run_task("SASS", compile_sass, cfg)
            return "sass"
        if _is_under(path, cfg.src_js_root):
            run_task("JS", copy_js_file, path, cfg)
            return "js"
        if _is_under(path, cfg.src_img_root) and ext in (RASTER_EXTS | VECTOR_EXTS):
            for status in process_image(path, cfg):
                print(status)
            return "images"
        if ext == ".html" and _is_under(path, cfg.src_root):
            run_task("HTML", copy_html_file, path, cfg)
            return "html"
        return None

    def removed(self, path: Path) -> Optional[str]:
        """Drop the outputs of a deleted source image."""
        cfg = self.config
        ext = path.suffix.lower()
        if not _is_under(path, cfg.src_img_root):
            return None
        if ext in RASTER_EXTS:
            delete_outputs_for(path, False, cfg, callback=self._report(path))
            return "raster"
        if ext in VECTOR_EXTS:
            delete_outputs_for(path, True, cfg, callback=self._report(path))
            return "svg"
        return None

    def changed_dir(self, path: Path) -> int:
        """Rebuild every image below a directory moved into the tree."""
        if not _is_under(path, self.config.src_img_root) or not path.is_dir():
            return 0
        images = [p for p in collect_images(path) if not is_transient(p)]
        for p in images:
            self.changed(p)
        return len(images)

    def removed_dir(self, path: Path) -> bool:
        """Drop the mirrored outputs of a source image directory."""
        if not _is_under(path, self.config.src_img_root):
            return False
        delete_outputs_under(path, self.config, callback=self._report(path))
        return True

    def _report(self, path: Path) -> Callable[[Optional[BaseException]], None]:
        def done(err: Optional[BaseException]) -> None:
            if err is not None:
                print(f"ERR   [UNLINK] {self.config.rel(path)}: {err}")
        return done


def serve(config: BuildConfig) -> None:
    """Initial pass, then watch and serve dist/ with live reload until interrupted."""
    run_task("HTML", copy_html, config)
    run_task("SASS", compile_sass, config)
    run_task("JS", copy_js, config)
    run_task("IMAGES", optimise_images, config)

    config.dist_root.mkdir(parents=True, exist_ok=True)
    config.src_root.mkdir(parents=True, exist_ok=True)

    observer = Observer()
    observer.schedule(SourceEventHandler(config), str(config.src_root), recursive=True)
    observer.start()
    print(f"WATCH {config.rel(config.src_root)}")

    server = Server()
    server.watch(str(config.dist_root))
    print(f"SERVE http://{config.host}:{config.port}/")
    try:
        server.serve(root=str(config.dist_root), host=config.host, port=config.port, open_url_delay=0.5)
    finally:
        observer.stop()
        observer.join()
