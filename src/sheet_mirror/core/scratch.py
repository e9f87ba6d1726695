"""Process-local scratch storage for files in transit."""

import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional


class ScratchSpace:
    """Hands out temporary files that are removed as soon as they are released."""

    def __init__(self, root: Optional[str] = None):
        self._root = Path(root) if root else None
        self._owned = root is None

    @property
    def root(self) -> Path:
        """Scratch directory, created on first use."""
        if self._root is None:
            self._root = Path(tempfile.mkdtemp(prefix="sheet-mirror-"))
        self._root.mkdir(parents=True, exist_ok=True)
        return self._root

    @contextmanager
    def file(self, suffix: str = "") -> Iterator[Path]:
        """Yield a unique scratch path and delete it on exit, success or not."""
        fd, name = tempfile.mkstemp(dir=self.root, suffix=suffix)
        os.close(fd)
        path = Path(name)
        try:
            yield path
        finally:
            path.unlink(missing_ok=True)

    def cleanup(self) -> None:
        """Remove a scratch directory this instance created."""
        if self._owned and self._root is not None:
            shutil.rmtree(self._root, ignore_errors=True)
            self._root = None

    def leftovers(self) -> list:
        """Files currently present in the scratch directory."""
        if self._root is None or not self._root.exists():
            return []
        return sorted(self._root.iterdir())
