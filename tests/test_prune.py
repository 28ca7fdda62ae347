import os

import pytest

from sitepipe.prune import (
    clean_images,
    delete_all,
    delete_outputs_for,
    delete_outputs_under,
    find_orphans,
    outputs_for,
    outputs_under,
    prune_images,
    safe_unlink,
)

from conftest import touch


def test_safe_unlink_missing_file_is_not_an_error(tmp_path):
    target = touch(tmp_path / "a.jpg")
    assert safe_unlink(target) is True
    assert safe_unlink(target) is False
    assert not target.exists()


def test_delete_all_raises_after_every_deletion_settles(tmp_path):
    files = [touch(tmp_path / f"{i}.jpg") for i in range(5)]
    blocker = tmp_path / "blocker.jpg"
    blocker.mkdir()

    with pytest.raises(OSError) as exc:
        delete_all(files + [blocker, tmp_path / "gone.jpg"], threads=3)

    assert not isinstance(exc.value, FileNotFoundError)
    # no rollback: the good deletions stay done
    assert not any(p.exists() for p in files)
    assert blocker.is_dir()


def test_delete_all_returns_only_removed(tmp_path):
    a = touch(tmp_path / "a.png")
    assert delete_all([a, tmp_path / "missing.png"]) == [a]
    assert delete_all([]) == []


# ---------- Unlink hook ----------

def test_raster_unlink_removes_compressed_and_derived(config, src_img, dist_img):
    # Scenario A
    outputs = [touch(dist_img / n) for n in ("hero.jpg", "hero.avif", "hero.webp")]
    sibling = touch(dist_img / "other.jpg")
    calls = []

    err = delete_outputs_for(src_img / "hero.jpg", False, config, callback=calls.append)

    assert err is None
    assert calls == [None]
    assert not any(p.exists() for p in outputs)
    assert sibling.exists()


def test_raster_unlink_with_nothing_to_delete(config, src_img):
    calls = []
    assert delete_outputs_for(src_img / "hero.jpg", False, config, callback=calls.append) is None
    assert calls == [None]


def test_raster_unlink_in_subdirectory(config, src_img, dist_img):
    main = touch(dist_img / "top" / "header.png")
    derived = touch(dist_img / "top" / "header.avif")
    delete_outputs_for(src_img / "top" / "header.png", False, config)
    assert not main.exists()
    assert not derived.exists()


def test_vector_unlink_removes_only_svg(config, src_img, dist_img):
    # Scenario E
    svg = touch(dist_img / "icon.svg")
    rasters = [touch(dist_img / n) for n in ("icon.png", "icon.avif", "icon.webp")]

    delete_outputs_for(src_img / "icon.svg", True, config)

    assert not svg.exists()
    assert all(p.exists() for p in rasters)


def test_unlink_reports_error_through_callback_once(config, src_img, dist_img):
    main = touch(dist_img / "hero.jpg")
    (dist_img / "hero.avif").mkdir()
    calls = []

    err = delete_outputs_for(src_img / "hero.jpg", False, config, callback=calls.append)

    assert isinstance(err, OSError)
    assert calls == [err]
    assert not main.exists()


def test_unlink_outside_source_root_is_reported(config, tmp_path):
    calls = []
    err = delete_outputs_for(tmp_path / "elsewhere" / "hero.jpg", False, config, callback=calls.append)
    assert err is not None
    assert calls == [err]


def test_outputs_for(config, src_img, dist_img):
    assert outputs_for(src_img / "a" / "b.jpeg", False, config) == [
        dist_img / "a" / "b.jpeg",
        dist_img / "a" / "b.avif",
        dist_img / "a" / "b.webp",
    ]
    assert outputs_for(src_img / "logo.svg", True, config) == [dist_img / "logo.svg"]


# ---------- Orphan scan ----------

def test_prune_deletes_derived_without_source(config, dist_img):
    # Scenario B
    old = touch(dist_img / "old.avif")
    assert prune_images(config) == [old]
    assert not old.exists()


@pytest.mark.parametrize("source", ["kept.png", "kept.jpg", "kept.jpeg"])
def test_prune_keeps_derived_with_any_raster_source(config, src_img, dist_img, source):
    # Scenario C
    touch(src_img / source)
    kept = [touch(dist_img / "kept.avif"), touch(dist_img / "kept.webp")]
    assert prune_images(config) == []
    assert all(p.exists() for p in kept)


def test_prune_requires_exact_extension_for_rasters_and_svg(config, src_img, dist_img):
    touch(src_img / "photo.png")
    touch(src_img / "logo.svg")
    touch(src_img / "deep" / "x.jpg")
    kept = [
        touch(dist_img / "photo.png"),
        touch(dist_img / "logo.svg"),
        touch(dist_img / "deep" / "x.jpg"),
        touch(dist_img / "deep" / "x.avif"),
    ]
    orphans = [
        touch(dist_img / "photo.jpg"),
        touch(dist_img / "logo.png"),
        touch(dist_img / "stray.svg"),
        touch(dist_img / "deep" / "y.webp"),
    ]

    assert find_orphans(config) == sorted(orphans)
    prune_images(config)

    assert all(p.exists() for p in kept)
    assert not any(p.exists() for p in orphans)


def test_prune_ignores_non_image_files(config, dist_img):
    readme = touch(dist_img / "README.txt")
    gif = touch(dist_img / "anim.gif")
    assert prune_images(config) == []
    assert readme.exists() and gif.exists()


def test_prune_without_dist_tree(tmp_path):
    from sitepipe.config import BuildConfig

    assert prune_images(BuildConfig(root=tmp_path)) == []


def test_prune_propagates_real_errors(config, dist_img, monkeypatch):
    touch(dist_img / "old.webp")

    def boom(path):
        raise PermissionError(13, "denied", str(path))

    monkeypatch.setattr("sitepipe.prune.safe_unlink", boom)
    with pytest.raises(PermissionError):
        prune_images(config)


# ---------- Selective cleanup ----------

def test_clean_images_keeps_exact_relative_paths(config, dist_img):
    # Scenario D
    keep = touch(dist_img / "sora.jpg")
    nested_same_name = touch(dist_img / "top" / "sora.jpg")
    gone = [touch(dist_img / "a.jpg"), touch(dist_img / "b.png"), nested_same_name]
    others = [touch(dist_img / "a.avif"), touch(dist_img / "c.jpeg"), touch(dist_img / "d.svg")]

    removed = clean_images(config, keep=["sora.jpg"])

    assert removed == sorted(gone)
    assert keep.exists()
    assert all(p.exists() for p in others)


def test_clean_images_nested_keep_and_default_list(config, dist_img):
    header = touch(dist_img / "top" / "header.jpg")
    sora = touch(dist_img / "sora.jpg")
    clean_images(config, keep=["top\\header.jpg"])
    assert header.exists()
    assert not sora.exists()

    sora = touch(dist_img / "sora.jpg")
    clean_images(config)
    assert sora.exists()
    assert not header.exists()


@pytest.mark.skipif(os.name == "nt", reason="posix permissions")
def test_clean_images_surfaces_permission_errors(config, dist_img):
    if os.geteuid() == 0:
        pytest.skip("root ignores directory permissions")
    locked = dist_img / "locked"
    touch(locked / "a.jpg")
    locked.chmod(0o500)
    try:
        with pytest.raises(PermissionError):
            clean_images(config, keep=[])
    finally:
        locked.chmod(0o700)


@pytest.mark.skipif(os.sep != "/", reason="posix filenames")
def test_backslash_in_filename_is_not_a_directory(config, src_img, dist_img):
    touch(src_img / "a\\b.jpg")
    out = touch(dist_img / "a\\b.jpg")
    nested = touch(dist_img / "a" / "b.jpg")

    assert prune_images(config) == [nested]
    assert out.exists()

    assert outputs_for(src_img / "a\\b.jpg", False, config)[0] == out
    delete_outputs_for(src_img / "a\\b.jpg", False, config)
    assert not out.exists()


def test_outputs_under_directory(config, src_img, dist_img):
    inside = [touch(dist_img / "top" / n) for n in ("a.jpg", "a.webp", "sub/b.svg")]
    touch(dist_img / "top" / "notes.txt")
    touch(dist_img / "topper.jpg")
    assert outputs_under(src_img / "top", config) == sorted(inside)


def test_directory_unlink_reports_error_once(config, src_img, dist_img, monkeypatch):
    keep = touch(dist_img / "top" / "a.jpg")
    touch(dist_img / "top" / "a.webp")
    real_unlink = safe_unlink

    def flaky(path):
        if path.suffix == ".webp":
            raise PermissionError(13, "denied", str(path))
        return real_unlink(path)

    monkeypatch.setattr("sitepipe.prune.safe_unlink", flaky)
    calls = []

    err = delete_outputs_under(src_img / "top", config, callback=calls.append)

    assert isinstance(err, PermissionError)
    assert calls == [err]
    assert not keep.exists()


def test_directory_unlink_success_reports_none(config, src_img, dist_img):
    touch(dist_img / "top" / "a.jpg")
    calls = []
    assert delete_outputs_under(src_img / "top", config, callback=calls.append) is None
    assert calls == [None]
