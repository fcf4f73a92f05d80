"""
Read-only byte channel over a local GGUF file using mmap + memoryview.

The channel is owned by the caller and scoped with ``with``; the codec only
borrows its view for the duration of a parse:

    with LocalFileSource(path).open() as mf:
        model = parse_gguf(mf.view)
        start, end = model.tensor_data_range("token_embd.weight")
        raw = mf.view[start:end]  # zero-copy, release before leaving the block
"""

from __future__ import annotations

import mmap
import os
from dataclasses import dataclass
from typing import Optional

from loguru import logger


@dataclass
class LocalFileSource:
    """Local GGUF file to be memory-mapped.

    Attributes:
        path: Path to the local file.
    """

    path: str

    def open(self) -> "MappedFile":
        """Open and memory-map the file read-only."""
        return MappedFile(self.path)


class MappedFile:
    """Context manager that maps a file read-only and exposes a memoryview.

    Empty files cannot be mapped; they expose an empty view so parsing them
    fails with a truncation error rather than an OS error.
    """

    __slots__ = ("_fd", "_m", "_mv", "size", "path")

    def __init__(self, path: str):
        self.path = path
        self._fd: Optional[int] = None
        self._m: Optional[mmap.mmap] = None
        self._mv: Optional[memoryview] = None
        self.size: int = 0

    def __enter__(self) -> "MappedFile":
        self._fd = os.open(self.path, os.O_RDONLY | getattr(os, "O_BINARY", 0))
        try:
            self.size = os.fstat(self._fd).st_size
            if self.size:
                self._m = mmap.mmap(self._fd, self.size, access=mmap.ACCESS_READ)
                self._mv = memoryview(self._m)
            else:
                self._mv = memoryview(b"")
        except BaseException:
            self.close()
            raise
        logger.debug("Mapped {path} ({size} bytes)", path=self.path, size=self.size)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._mv is not None:
            self._mv.release()
            self._mv = None
        if self._m is not None:
            self._m.close()
            self._m = None
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    @property
    def view(self) -> memoryview:
        """Zero-copy memoryview over the file bytes."""
        if self._mv is None:
            raise RuntimeError("MappedFile is not entered")
        return self._mv
