"""
Atomic file writes

Write to a temp file in the target directory, fsync, then rename over the
destination. Readers see either the old content or the new content, never a
truncated file.
"""

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Union


@contextmanager
def atomic_write(path: Union[str, Path], encoding: str = "utf-8") -> Iterator[IO[str]]:
    """
    Open a temp file for writing that replaces ``path`` on success.

    On any exception inside the block the temp file is removed and the
    original file is left untouched.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    tmp = tempfile.NamedTemporaryFile(
        mode="w",
        encoding=encoding,
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    )
    try:
        with tmp:
            yield tmp
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp.name, target)
    except BaseException:
        try:
            os.unlink(tmp.name)
        except FileNotFoundError:
            pass
        raise


def write_text_atomic(path: Union[str, Path], content: str, encoding: str = "utf-8"):
    """Convenience wrapper for whole-string writes"""
    with atomic_write(path, encoding=encoding) as f:
        f.write(content)
