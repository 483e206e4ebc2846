# pesign_repackage/errors.py
# -*- coding: utf-8 -*-
"""
Exception hierarchy for pesign-repackage.

Every component raises one of these; only the CLI turns them into an exit status.
"""

from __future__ import annotations


class RepackageError(Exception):
    pass


class InputError(RepackageError):
    """Input contract violation (payload dir, package set, source rpm)."""
    pass


class RowCountError(InputError):
    def __init__(self, what: str, expected: int, got: int):
        super().__init__(f"{what}: row count mismatch ({expected} != {got})")
        self.what = what
        self.expected = expected
        self.got = got


class UnknownValueError(RepackageError):
    pass


class QueryError(RepackageError):
    pass


class OutputError(RepackageError):
    pass


class CompressionError(RepackageError):
    pass
