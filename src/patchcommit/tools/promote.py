"""Copy newly created objects from a workspace into the canonical store."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

from ..errors import PromotionFailed
from ..utils.logging import emit_event

LOGGER = logging.getLogger(__name__)

# Workspace-local metadata that must never leak into the canonical store.
_SKIPPED_DIRS = frozenset({"info"})


def _object_files(objects_dir: Path) -> Iterator[Path]:
    # Pack indexes go last so a reader never sees an index without its pack.
    files = (path for path in objects_dir.rglob("*") if path.is_file())
    for path in sorted(files, key=lambda item: (item.suffix == ".idx", item.as_posix())):
        relative = path.relative_to(objects_dir)
        if relative.parts[0] in _SKIPPED_DIRS:
            continue
        yield path


def _install(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix="tmp_obj_", dir=target.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copyfile(source, temp_path)
        temp_path.chmod(0o444)
        os.replace(temp_path, target)
    finally:
        temp_path.unlink(missing_ok=True)


def promote(workspace_objects: Path, canonical_objects: Path) -> int:
    """Copy every object missing from ``canonical_objects``.

    Objects already present are skipped: a content-addressed name implies
    identical bytes.  Each new object is written to a temporary file and
    renamed into place, so re-running after a partial failure is safe.
    Returns the number of objects written.
    """

    if not canonical_objects.is_dir():
        raise PromotionFailed(f"canonical object store missing: {canonical_objects}")
    if not workspace_objects.is_dir():
        raise PromotionFailed(f"workspace object store missing: {workspace_objects}")

    written = 0
    skipped = 0
    try:
        for source in _object_files(workspace_objects):
            target = canonical_objects / source.relative_to(workspace_objects)
            if target.exists():
                skipped += 1
                continue
            _install(source, target)
            written += 1
    except OSError as error:
        raise PromotionFailed(
            str(error),
            details={"written": written, "source": workspace_objects.as_posix()},
        ) from error

    LOGGER.debug("promoted %d object(s) into %s (%d already present)", written, canonical_objects, skipped)
    emit_event("objects_promoted", written=written, skipped=skipped, target=canonical_objects)
    return written


__all__ = ["promote"]
