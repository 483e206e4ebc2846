# pesign_repackage/materializer.py
# -*- coding: utf-8 -*-
"""
materializer.py - make the payload tree match the manifest being written

Features:
- ghost placeholders (sparse file, empty directory or symlink) when nothing is on disk
- directory and symlink mtime fixups (cpio extraction does not preserve them)
- kernel module permission/mtime fixups and queued compression
- batch compression through `xargs -P` with a transient path list file
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from typing import List, Optional

from pesign_repackage.errors import CompressionError, OutputError
from pesign_repackage.flags import ModuleCodec
from pesign_repackage.logging import get_logger
from pesign_repackage.model import FileEntry

logger = get_logger("materializer")

SIG_SUFFIX = ".sig"


def _run(cmd: List[str]) -> subprocess.CompletedProcess:
    logger.debug("RUN: %s", " ".join(cmd))
    try:
        return subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except OSError as e:
        raise OutputError(f"{cmd[0]}: {e}") from e


class Materializer:
    def __init__(self, payload_dir: str, codec: Optional[ModuleCodec] = None, jobs: int = 8):
        self.payload_dir = payload_dir
        self.codec = codec
        self.jobs = jobs
        self.queued: List[str] = []

    def disk_path(self, entry: FileEntry) -> str:
        return os.path.join(self.payload_dir, entry.path.lstrip("/"))

    def has_signature(self, entry: FileEntry) -> bool:
        return os.path.exists(self.disk_path(entry) + SIG_SUFFIX)

    # -----------------------
    # timestamps
    # -----------------------
    def fix_mtime(self, entry: FileEntry) -> None:
        path = self.disk_path(entry)
        if os.path.isdir(path) or os.path.isfile(path):
            try:
                os.utime(path, (entry.mtime, entry.mtime))
            except OSError as e:
                raise OutputError(f"{entry.path}: {e}") from e

    def touch_symlink(self, entry: FileEntry) -> None:
        p = _run(["touch", "-h", "-c", "-d", f"@{entry.mtime}", self.disk_path(entry)])
        if p.returncode != 0:
            raise OutputError(f"touch {entry.path} failed: {p.stderr.strip()}")

    # -----------------------
    # ghosts
    # -----------------------
    def create_ghost(self, entry: FileEntry) -> bool:
        """Create a placeholder for a %ghost entry. Returns False if something already exists."""
        path = self.disk_path(entry)
        if os.path.lexists(path):
            return False
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            if entry.is_dir:
                os.mkdir(path)
            elif entry.is_symlink:
                os.symlink(entry.linkto, path)
            else:
                with open(path, "wb") as f:
                    f.truncate(entry.size)
        except OSError as e:
            raise OutputError(f"{entry.path}: cannot create ghost: {e}") from e
        logger.debug("created ghost %s", entry.path)
        if entry.is_symlink:
            self.touch_symlink(entry)
        else:
            self.fix_mtime(entry)
        return True

    # -----------------------
    # kernel modules
    # -----------------------
    def wants_compression(self, entry: FileEntry) -> bool:
        return self.codec is not None and entry.is_kernel_module

    def queue_module(self, entry: FileEntry) -> str:
        """Fix up a kernel module, queue it and return its name after compression."""
        path = self.disk_path(entry)
        try:
            os.chmod(path, entry.permissions)
            os.utime(path, (entry.mtime, entry.mtime))
        except OSError as e:
            raise OutputError(f"{entry.path}: {e}") from e
        self.queued.append(path)
        return entry.path + self.codec.extension

    def compress_queued(self) -> int:
        """Compress every queued module in parallel; returns the number of files."""
        if not self.queued:
            return 0
        fd, listfile = tempfile.mkstemp(prefix="pesign-repackage-", suffix=".list")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write("".join(p + "\n" for p in self.queued))
            cmd = ["xargs", "-a", listfile, "-d", "\n", "-P", str(self.jobs), "-n", "1", "--"] + list(self.codec.command)
            logger.info("compressing %d kernel modules with %s", len(self.queued), self.codec.name)
            p = _run(cmd)
            if p.returncode != 0:
                raise CompressionError(f"{self.codec.name} compression failed ({p.returncode}): {p.stderr.strip()}")
        finally:
            os.unlink(listfile)
        count = len(self.queued)
        self.queued = []
        return count
