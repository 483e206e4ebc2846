# pesign_repackage/model.py
# -*- coding: utf-8 -*-
"""
In-memory model of the binary packages being repackaged.
"""

from __future__ import annotations

import stat
from collections import OrderedDict, namedtuple
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterator, List, Sequence, Tuple, TypeVar

from pesign_repackage.errors import RowCountError

KMOD_SUFFIX = ".ko"

# tag suffix in the rpm header -> directive in the specfile
DEP_KINDS: Dict[str, Tuple[str, str]] = {
    "conflicts": ("CONFLICT", "Conflicts"),
    "enhances": ("ENHANCE", "Enhances"),
    "obsoletes": ("OBSOLETE", "Obsoletes"),
    "orderwithrequires": ("ORDER", "OrderWithRequires"),
    "provides": ("PROVIDE", "Provides"),
    "recommends": ("RECOMMEND", "Recommends"),
    "requires": ("REQUIRE", "Requires"),
    "suggests": ("SUGGEST", "Suggests"),
    "supplements": ("SUPPLEMENT", "Supplements"),
}

# scriptlet kind -> (interpreter tag, body tag)
SCRIPT_KINDS: Dict[str, Tuple[str, str]] = {
    "pre": ("PREINPROG", "PREIN"),
    "post": ("POSTINPROG", "POSTIN"),
    "preun": ("PREUNPROG", "PREUN"),
    "postun": ("POSTUNPROG", "POSTUN"),
    "pretrans": ("PRETRANSPROG", "PRETRANS"),
    "posttrans": ("POSTTRANSPROG", "POSTTRANS"),
    "verifyscript": ("VERIFYSCRIPTPROG", "VERIFYSCRIPT"),
}

# specfile tag name -> Package attribute
SIMPLE_TAGS: Tuple[Tuple[str, str], ...] = (
    ("Epoch", "epoch"),
    ("Version", "version"),
    ("Release", "release"),
    ("License", "license"),
    ("Group", "group"),
    ("Summary", "summary"),
    ("Packager", "packager"),
    ("Vendor", "vendor"),
    ("URL", "url"),
    ("VCS", "vcs"),
    ("Distribution", "distribution"),
)


# -----------------------
# Correlated parallel arrays
# -----------------------
class CorrelatedTable:
    """Parallel columns of equal length, iterated as rows.

    The length check happens in the constructor, before anything is consumed.
    """

    def __init__(self, what: str, **columns: Sequence[Any]):
        self.what = what
        self.fields = tuple(columns)
        self._columns = [list(c) for c in columns.values()]
        self._row_type = namedtuple("Row", self.fields)
        lengths = [len(c) for c in self._columns]
        if lengths and any(n != lengths[0] for n in lengths):
            expected = lengths[0]
            got = next(n for n in lengths if n != expected)
            raise RowCountError(what, expected, got)

    @classmethod
    def from_rows(cls, what: str, fields: Sequence[str], rows: Sequence[Sequence[Any]]) -> "CorrelatedTable":
        for row in rows:
            if len(row) != len(fields):
                raise RowCountError(what, len(fields), len(row))
        columns = {f: [row[i] for row in rows] for i, f in enumerate(fields)}
        return cls(what, **columns)

    def __iter__(self) -> Iterator[Any]:
        for values in zip(*self._columns):
            yield self._row_type(*values)


K = TypeVar("K")
V = TypeVar("V")


class OrderedMultiMap(Generic[K, V]):
    """Key -> list of values, both in first-seen order; missing keys give []."""

    def __init__(self):
        self._data: "OrderedDict[K, List[V]]" = OrderedDict()

    def add(self, key: K, value: V) -> None:
        self._data.setdefault(key, []).append(value)

    def get(self, key: K) -> List[V]:
        return list(self._data.get(key, []))


# -----------------------
# Data models
# -----------------------
@dataclass(frozen=True)
class FileEntry:
    path: str
    flags: int = 0
    mode: int = 0o100644
    owner: str = "root"
    group: str = "root"
    size: int = 0
    mtime: int = 0
    linkto: str = ""
    verifyflags: int = -1
    lang: str = ""
    caps: str = ""

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)

    @property
    def is_regular(self) -> bool:
        return stat.S_ISREG(self.mode)

    @property
    def is_kernel_module(self) -> bool:
        return self.is_regular and self.path.endswith(KMOD_SUFFIX)

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)


@dataclass(frozen=True)
class Dependency:
    name: str
    flags: int = 0
    version: str = ""


@dataclass(frozen=True)
class Script:
    interpreter: str
    body: str = ""


@dataclass(frozen=True)
class Trigger:
    type: str
    interpreter: str
    condition: str
    body: str = ""


@dataclass(frozen=True)
class FileTriggerCondition:
    name: str
    version: str
    flags: int


@dataclass(frozen=True)
class FileTrigger:
    interpreter: str
    scriptflags: int
    priority: str
    body: str
    conditions: Tuple[FileTriggerCondition, ...] = ()


@dataclass(frozen=True)
class TransFileTrigger(FileTrigger):
    pass


@dataclass
class Package:
    name: str
    arch: str = ""
    sourcerpm: str = ""
    epoch: str = ""
    version: str = ""
    release: str = ""
    license: str = ""
    group: str = ""
    summary: str = ""
    packager: str = ""
    vendor: str = ""
    url: str = ""
    vcs: str = ""
    distribution: str = ""
    description: str = ""
    changelog: str = ""
    payload_compressor: str = ""
    payload_flags: str = ""
    is_kmp: bool = False
    nosource: bool = False
    synthetic: bool = False
    files: List[FileEntry] = field(default_factory=list)
    deps: Dict[str, List[Dependency]] = field(default_factory=dict)
    scripts: Dict[str, Script] = field(default_factory=dict)
    triggers: List[Trigger] = field(default_factory=list)
    filetriggers: List[FileTrigger] = field(default_factory=list)
    transfiletriggers: List[TransFileTrigger] = field(default_factory=list)

    def __repr__(self):
        return f"Package({self.name!r}, {self.version}-{self.release}.{self.arch})"
