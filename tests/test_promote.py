from __future__ import annotations

import importlib
from pathlib import Path

import pytest

from patchcommit.errors import PromotionFailed
from patchcommit.tools.promote import promote

promote_module = importlib.import_module("patchcommit.tools.promote")


def _object(root: Path, name: str, payload: bytes) -> Path:
    path = root / name[:2] / name[2:]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


@pytest.fixture()
def stores(tmp_path: Path) -> tuple[Path, Path]:
    workspace = tmp_path / "workspace-objects"
    canonical = tmp_path / "canonical-objects"
    (workspace / "info").mkdir(parents=True)
    (workspace / "pack").mkdir()
    (canonical / "info").mkdir(parents=True)
    return workspace, canonical


def test_copies_missing_objects(stores: tuple[Path, Path]) -> None:
    workspace, canonical = stores
    _object(workspace, "ab" + "1" * 38, b"blob")
    _object(workspace, "cd" + "2" * 38, b"tree")

    written = promote(workspace, canonical)

    assert written == 2
    target = canonical / "ab" / ("1" * 38)
    assert target.read_bytes() == b"blob"
    assert not target.stat().st_mode & 0o222
    assert not list(canonical.rglob("tmp_obj_*"))


def test_existing_objects_are_left_untouched(stores: tuple[Path, Path]) -> None:
    workspace, canonical = stores
    name = "ab" + "1" * 38
    _object(workspace, name, b"blob")
    existing = _object(canonical, name, b"blob")
    before = existing.stat().st_mtime_ns

    assert promote(workspace, canonical) == 0
    assert existing.stat().st_mtime_ns == before


def test_rerun_after_partial_promotion(stores: tuple[Path, Path]) -> None:
    workspace, canonical = stores
    names = ["ab" + "1" * 38, "cd" + "2" * 38, "ef" + "3" * 38]
    for index, name in enumerate(names):
        _object(workspace, name, f"object-{index}".encode())
    _object(canonical, names[0], b"object-0")

    assert promote(workspace, canonical) == 2
    assert promote(workspace, canonical) == 0
    for index, name in enumerate(names):
        assert (canonical / name[:2] / name[2:]).read_bytes() == f"object-{index}".encode()


def test_workspace_info_is_not_promoted(stores: tuple[Path, Path]) -> None:
    workspace, canonical = stores
    (workspace / "info" / "alternates").write_text("/elsewhere/objects\n", encoding="utf-8")

    assert promote(workspace, canonical) == 0
    assert not (canonical / "info" / "alternates").exists()


def test_missing_canonical_store(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace-objects"
    workspace.mkdir()

    with pytest.raises(PromotionFailed) as excinfo:
        promote(workspace, tmp_path / "nowhere")

    assert excinfo.value.retryable


def test_io_errors_become_promotion_failures(
    stores: tuple[Path, Path], monkeypatch: pytest.MonkeyPatch
) -> None:
    workspace, canonical = stores
    _object(workspace, "ab" + "1" * 38, b"blob")

    def disk_full(source: Path, target: Path) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(promote_module.shutil, "copyfile", disk_full)

    with pytest.raises(PromotionFailed, match="No space left"):
        promote(workspace, canonical)

    assert not (canonical / "ab").exists() or not list((canonical / "ab").iterdir())
