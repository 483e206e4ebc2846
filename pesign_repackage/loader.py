# pesign_repackage/loader.py
# -*- coding: utf-8 -*-
"""
loader.py - build a Package from header tags

Features:
- simple tags, description and changelog
- file list from the per-file arrays, kernel module (KMP) detection
- dependencies of all kinds, dropping the empty "no dependency" rows
- scriptlets, probed through their interpreter tag
- triggers, file triggers and transaction file triggers correlated with their bodies
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple, Type

from pesign_repackage.logging import get_logger
from pesign_repackage.model import (
    DEP_KINDS,
    SCRIPT_KINDS,
    CorrelatedTable,
    Dependency,
    FileEntry,
    FileTrigger,
    FileTriggerCondition,
    OrderedMultiMap,
    Package,
    Script,
    TransFileTrigger,
    Trigger,
)

logger = get_logger("loader")

# Package attribute -> header tag
SCALAR_TAGS: Dict[str, str] = {
    "arch": "ARCH",
    "sourcerpm": "SOURCERPM",
    "epoch": "EPOCH",
    "version": "VERSION",
    "release": "RELEASE",
    "license": "LICENSE",
    "group": "GROUP",
    "summary": "SUMMARY",
    "packager": "PACKAGER",
    "vendor": "VENDOR",
    "url": "URL",
    "vcs": "VCS",
    "distribution": "DISTRIBUTION",
    "description": "DESCRIPTION",
    "payload_compressor": "PAYLOADCOMPRESSOR",
    "payload_flags": "PAYLOADFLAGS",
}

FILE_TAGS: Tuple[Tuple[str, str], ...] = (
    ("path", "FILENAMES"),
    ("flags", "FILEFLAGS"),
    ("mode", "FILEMODES"),
    ("owner", "FILEUSERNAME"),
    ("group", "FILEGROUPNAME"),
    ("size", "FILESIZES"),
    ("mtime", "FILEMTIMES"),
    ("linkto", "FILELINKTOS"),
    ("verifyflags", "FILEVERIFYFLAGS"),
    ("lang", "FILELANGS"),
    ("caps", "FILECAPS"),
)

# prefix of the FILETRIGGER* / TRANSFILETRIGGER* tag families
FILE_TRIGGER_FAMILIES: Dict[str, Tuple[str, Type[FileTrigger]]] = {
    "filetriggers": ("FILETRIGGER", FileTrigger),
    "transfiletriggers": ("TRANSFILETRIGGER", TransFileTrigger),
}


def _int(value: str, default: int = 0) -> int:
    if value == "":
        return default
    return int(value)


# -----------------------
# per-section loaders
# -----------------------
def load_files(query) -> List[FileEntry]:
    rows = query.array(*(tag for _, tag in FILE_TAGS))
    table = CorrelatedTable.from_rows("files", [f for f, _ in FILE_TAGS], rows)
    files: List[FileEntry] = []
    for row in table:
        files.append(FileEntry(
            path=row.path,
            flags=_int(row.flags),
            mode=_int(row.mode),
            owner=row.owner,
            group=row.group,
            size=_int(row.size),
            mtime=_int(row.mtime),
            linkto=row.linkto,
            verifyflags=_int(row.verifyflags, -1),
            lang=row.lang,
            caps=row.caps,
        ))
    return files


def load_dependencies(query) -> Dict[str, List[Dependency]]:
    deps: Dict[str, List[Dependency]] = {}
    for kind, (prefix, _) in DEP_KINDS.items():
        rows = query.array(f"{prefix}NAME", f"{prefix}FLAGS", f"{prefix}VERSION")
        table = CorrelatedTable.from_rows(kind, ("name", "flags", "version"), rows)
        deps[kind] = [Dependency(r.name, _int(r.flags), r.version) for r in table if r.name]
    return deps


def load_scripts(query) -> Dict[str, Script]:
    scripts: Dict[str, Script] = {}
    for kind, (prog_tag, body_tag) in SCRIPT_KINDS.items():
        interpreter = query.scalar(prog_tag)
        if not interpreter:
            continue
        scripts[kind] = Script(interpreter, query.scalar(body_tag))
    return scripts


def load_triggers(query) -> List[Trigger]:
    rows = query.array("TRIGGERTYPE", "TRIGGERSCRIPTPROG", "TRIGGERCONDS")
    bodies = query.multiline_array("TRIGGERSCRIPTS")
    table = CorrelatedTable(
        "triggers",
        type=[r[0] for r in rows],
        interpreter=[r[1] for r in rows],
        condition=[r[2] for r in rows],
        body=bodies,
    )
    return [Trigger(r.type, r.interpreter, r.condition, r.body) for r in table]


def group_conditions(rows: List[List[str]]) -> OrderedMultiMap:
    """Bucket (index, name, version, flags) rows by index, keeping row order."""
    buckets: OrderedMultiMap = OrderedMultiMap()
    table = CorrelatedTable.from_rows("file trigger conditions", ("index", "name", "version", "flags"), rows)
    for r in table:
        buckets.add(_int(r.index), FileTriggerCondition(r.name, r.version, _int(r.flags)))
    return buckets


def load_file_triggers(query, prefix: str, cls: Type[FileTrigger] = FileTrigger) -> List[FileTrigger]:
    cond_rows = query.array(f"{prefix}INDEX", f"{prefix}NAME", f"{prefix}VERSION", f"{prefix}FLAGS")
    buckets = group_conditions(cond_rows)
    script_rows = query.array(f"{prefix}SCRIPTPROG", f"{prefix}SCRIPTFLAGS", f"{prefix}PRIORITIES")
    bodies = query.multiline_array(f"{prefix}SCRIPTS")
    table = CorrelatedTable(
        prefix.lower(),
        interpreter=[r[0] for r in script_rows],
        scriptflags=[r[1] for r in script_rows],
        priority=[r[2] for r in script_rows],
        body=bodies,
    )
    res: List[FileTrigger] = []
    for i, r in enumerate(table):
        res.append(cls(
            interpreter=r.interpreter,
            scriptflags=_int(r.scriptflags),
            priority=r.priority,
            body=r.body,
            conditions=tuple(buckets.get(i)),
        ))
    return res


# -----------------------
# load a whole package
# -----------------------
def load_package(query) -> Package:
    """Query every tag needed to regenerate the package's specfile section."""
    name = query.scalar("NAME")
    logger.info("loading %s", name)
    values: Dict[str, Any] = {attr: query.scalar(tag) for attr, tag in SCALAR_TAGS.items()}
    pkg = Package(name=name, **values)
    pkg.changelog = query.changelog()
    pkg.files = load_files(query)
    pkg.is_kmp = any(f.is_kernel_module for f in pkg.files)
    pkg.deps = load_dependencies(query)
    pkg.scripts = load_scripts(query)
    pkg.triggers = load_triggers(query)
    for attr, (prefix, cls) in FILE_TRIGGER_FAMILIES.items():
        setattr(pkg, attr, load_file_triggers(query, prefix, cls))
    logger.debug("%s: %d files, %d triggers, kmp=%s", name, len(pkg.files), len(pkg.triggers), pkg.is_kmp)
    return pkg
