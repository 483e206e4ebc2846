# pesign_repackage/query.py
# -*- coding: utf-8 -*-
"""
query.py - header tag access through `rpm -qp --qf`

The binary package is never parsed here; rpm formats the tags and this module
splits the text back into scalars, rows of columns and framed multi-line arrays.
"""

from __future__ import annotations

import os
import subprocess
from typing import List

from pesign_repackage.errors import QueryError
from pesign_repackage.logging import get_logger

logger = get_logger("query")

NONE = "(none)"
# precedes every element of a multi-line array
DELIM = "|||"
SEP = "|"

CHANGELOG_FORMAT = "[* %{CHANGELOGTIME:day} %{CHANGELOGNAME}\\n%{CHANGELOGTEXT}\\n\\n]"


def _none_to_empty(value: str) -> str:
    return "" if value == NONE else value


def _lines(output: str) -> List[str]:
    lines = output.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def parse_rows(output: str, ncols: int) -> List[List[str]]:
    """Split `[%{A}|%{B}...\\n]` output into rows of ncols columns."""
    rows: List[List[str]] = []
    for line in _lines(output):
        cols = [_none_to_empty(c) for c in line.split(SEP)]
        if len(cols) != ncols:
            raise QueryError(f"expected {ncols} columns, got {len(cols)}: {line!r}")
        if not any(cols):
            continue
        rows.append(cols)
    return rows


def parse_multiline(output: str) -> List[str]:
    """Decode `[|||\\n%{TAG}\\n]` output into its elements."""
    lines = _lines(output)
    if not lines or lines[0] == NONE:
        return []
    if lines[0] != DELIM:
        logger.debug("query: no leading delimiter, treating as empty: %r", lines[0])
        return []
    res: List[str] = []
    cur: List[str] = []
    for line in lines[1:]:
        if line == DELIM:
            res.append("\n".join(cur))
            cur = []
        else:
            cur.append(line)
    res.append("\n".join(cur))
    return res


class RpmQuery:
    """Tag provider for one package file."""

    def __init__(self, rpm_path: str, rpm_binary: str = "rpm"):
        self.rpm_path = rpm_path
        self.rpm_binary = rpm_binary

    def __repr__(self):
        return f"RpmQuery({self.rpm_path!r})"

    def format(self, fmt: str) -> str:
        cmd = [self.rpm_binary, "-qp", "--nodigest", "--nosignature", "--qf", fmt, self.rpm_path]
        logger.debug("RUN: %s", " ".join(cmd))
        try:
            p = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except OSError as e:
            raise QueryError(f"{self.rpm_binary}: {e}") from e
        if p.returncode != 0:
            raise QueryError(f"{self.rpm_binary} -qp {os.path.basename(self.rpm_path)} failed ({p.returncode}): {p.stderr.strip()}")
        return p.stdout

    def scalar(self, tag: str) -> str:
        return _none_to_empty(self.format(f"%{{{tag}}}"))

    def array(self, *tags: str) -> List[List[str]]:
        fmt = "[" + SEP.join(f"%{{{t}}}" for t in tags) + "\\n]"
        return parse_rows(self.format(fmt), len(tags))

    def multiline_array(self, tag: str) -> List[str]:
        return parse_multiline(self.format(f"[{DELIM}\\n%{{{tag}}}\\n]"))

    def changelog(self) -> str:
        return self.format(CHANGELOG_FORMAT)
