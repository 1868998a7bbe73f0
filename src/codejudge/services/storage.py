from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
import os, shutil, stat, sys, tempfile, time

import structlog

from ..core.errors import SandboxError

log = structlog.get_logger(__name__)

_PREFIX = "run-"


def _make_writable_and_retry(func, path, exc_info):
    """rmtree error hook: submitted programs may chmod their own files or dirs."""
    exc = exc_info[1] if isinstance(exc_info, tuple) else exc_info
    if isinstance(exc, FileNotFoundError):
        return
    parent = os.path.dirname(path)
    os.chmod(parent, stat.S_IRWXU)
    if os.path.isdir(path) and not os.path.islink(path):
        os.chmod(path, stat.S_IRWXU)
    func(path)


def remove_tree(path: Path) -> None:
    try:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_make_writable_and_retry)
        else:
            shutil.rmtree(path, onerror=_make_writable_and_retry)
    except FileNotFoundError:
        pass
    except OSError as e:
        log.error("workspace_remove_failed", path=str(path), error=str(e))


class WorkspaceStore:
    """
    Scratch directories for grading runs, one fresh directory per run:
      <work_root>/
        └─ run-<submission_id>-<random>/
             ├─ box/               (cwd of the build and of every run)
             │    ├─ <source file>
             │    └─ <build outputs>
             └─ io/case-<n>.in     (stdin for one test case, removed after it)
    """

    def __init__(self, root: Path):
        self.root = root if root.is_absolute() else root.resolve()

    @contextmanager
    def workspace(self, submission_id: str) -> Iterator[Path]:
        """Yields a fresh directory and removes it on every exit path."""
        safe_id = "".join(c if c.isalnum() or c in "-_" else "_" for c in submission_id)[:40]
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path = Path(tempfile.mkdtemp(prefix=f"{_PREFIX}{safe_id}-", dir=self.root))
        except OSError as e:
            raise SandboxError(f"cannot create working directory under {self.root}: {e}") from e
        try:
            yield path
        finally:
            remove_tree(path)
            if path.exists():
                log.error("workspace_leaked", path=str(path))
            else:
                log.debug("workspace_removed", path=str(path))

    def active(self) -> list:
        if not self.root.exists():
            return []
        return sorted(p for p in self.root.iterdir() if p.name.startswith(_PREFIX))

    def sweep(self, older_than_s: float = 3600.0) -> int:
        """Remove run directories left behind by a crashed process. Returns the count."""
        now = time.time()
        removed = 0
        for p in self.active():
            try:
                age = now - p.stat().st_mtime
            except FileNotFoundError:
                continue
            if age >= older_than_s:
                remove_tree(p)
                removed += 1
        if removed:
            log.info("workspace_sweep", removed=removed, root=str(self.root))
        return removed
