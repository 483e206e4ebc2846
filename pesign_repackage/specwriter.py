# pesign_repackage/specwriter.py
# -*- coding: utf-8 -*-
"""
specwriter.py - render a PackageSet as a specfile

Features:
- SpecWriter accumulator passed to every render function; side-files for script bodies
- per package: payload, identity, tags, dependencies, description, scriptlets,
  triggers, file triggers, %files manifest
- %-escaping of all free text, quoting of file names
- file side effects (ghosts, mtimes, kernel module compression) through a Materializer
"""

from __future__ import annotations

import io
import os
from dataclasses import dataclass
from typing import List, Optional

from pesign_repackage import flags
from pesign_repackage.errors import OutputError, UnknownValueError
from pesign_repackage.flags import FileFlag
from pesign_repackage.logging import get_logger
from pesign_repackage.materializer import SIG_SUFFIX, Materializer
from pesign_repackage.model import DEP_KINDS, SIMPLE_TAGS, FileEntry, FileTrigger, Package
from pesign_repackage.pkgset import PackageSet

logger = get_logger("specwriter")

NOSOURCE_SPEC = "repackage.spec"
CERT_REQUIRES_SUFFIX = "-kmp-ueficert"

# flag -> marker, in the order the markers are written
FILE_MARKERS = (
    (FileFlag.doc, "%doc"),
    (FileFlag.license, "%license"),
    (FileFlag.readme, "%readme"),
    (FileFlag.pubkey, "%pubkey"),
    (FileFlag.artifact, "%artifact"),
)


def escape(text: str) -> str:
    return text.replace("%", "%%")


def quote_filename(name: str) -> str:
    name = escape(name).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{name}"'


@dataclass
class RenderOptions:
    payload_dir: str
    cert_subpackage: Optional[str] = None  # rendered certificate subpackage text
    macros: Optional[str] = None


class SpecWriter:
    """Accumulates the specfile text; script bodies go to side-files in output_dir."""

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        self._buf = io.StringIO()
        self.side_files: List[str] = []

    def line(self, text: str = "") -> None:
        self._buf.write(text + "\n")

    def text(self, text: str) -> None:
        """Write escaped free text, terminated by a newline."""
        self._buf.write(escape(text))
        if not text.endswith("\n"):
            self._buf.write("\n")

    def side_file(self, name: str, body: str) -> str:
        path = os.path.join(self.output_dir, name)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(body)
                if body and not body.endswith("\n"):
                    f.write("\n")
        except OSError as e:
            raise OutputError(f"cannot write {path}: {e}") from e
        self.side_files.append(path)
        return path

    def getvalue(self) -> str:
        return self._buf.getvalue()

    def write_to(self, path: str) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.getvalue())
        except OSError as e:
            raise OutputError(f"cannot write {path}: {e}") from e


def _name_opt(pkg: Package, pkgset: PackageSet) -> str:
    return "" if pkg.name == pkgset.main_name else f" -n {pkg.name}"


# -----------------------
# package header
# -----------------------
def render_payload(pkg: Package, w: SpecWriter) -> None:
    codec = flags.payload_codec(pkg.payload_compressor)
    w.line(f"%define _binary_payload w{pkg.payload_flags}.{codec}")


def render_identity(pkg: Package, pkgset: PackageSet, opts: RenderOptions, w: SpecWriter) -> None:
    if pkg.name == pkgset.main_name:
        w.line(f"Name: {pkg.name}")
        w.line(f"BuildRoot: {escape(opts.payload_dir)}")
        if pkg.nosource:
            # keeps the SOURCERPM tag at *.nosrc.rpm
            w.line(f"Source0: {NOSOURCE_SPEC}")
            w.line("NoSource: 0")
    else:
        w.line(f"%package -n {pkg.name}")


def render_tags(pkg: Package, w: SpecWriter) -> None:
    for tag, attr in SIMPLE_TAGS:
        value = getattr(pkg, attr)
        if value:
            w.line(f"{tag}: {escape(value)}")
    if pkg.arch == "noarch":
        w.line("BuildArch: noarch")


def dependency_line(tag: str, dep) -> Optional[str]:
    """Specfile line for one dependency, None for rpmbuild-generated ones."""
    if flags.dep_is_internal(dep.flags):
        return None
    quals = flags.dep_qualifiers(dep.flags)
    line = tag + (f"({','.join(quals)})" if quals else "") + f": {escape(dep.name)}"
    op = flags.dep_operator(dep.flags)
    if op and dep.version:
        line += f" {op} {escape(dep.version)}"
    return line


def render_dependencies(pkg: Package, w: SpecWriter) -> None:
    for kind in sorted(pkg.deps):
        tag = DEP_KINDS[kind][1]
        for dep in pkg.deps[kind]:
            line = dependency_line(tag, dep)
            if line is not None:
                w.line(line)


# -----------------------
# scriptlets and triggers
# -----------------------
def render_scripts(pkg: Package, pkgset: PackageSet, w: SpecWriter) -> None:
    for kind in sorted(pkg.scripts):
        script = pkg.scripts[kind]
        if not script.body:
            continue
        path = w.side_file(f"{kind}-{pkg.name}", script.body)
        w.line(f"%{kind}{_name_opt(pkg, pkgset)} -p {script.interpreter} -f {escape(path)}")


def render_triggers(pkg: Package, pkgset: PackageSet, w: SpecWriter) -> None:
    for i, trig in enumerate(pkg.triggers):
        path = w.side_file(f"trigger-{i}-{pkg.name}", trig.body)
        w.line(f"%trigger{trig.type}{_name_opt(pkg, pkgset)} -p {trig.interpreter} -f {escape(path)} -- {escape(trig.condition)}")


def file_trigger_sense(trig: FileTrigger) -> str:
    if not trig.conditions:
        raise UnknownValueError("file trigger without conditions has no sense")
    return flags.sense_keyword(trig.conditions[0].flags)


def render_file_triggers(pkg: Package, pkgset: PackageSet, w: SpecWriter, triggers: List[FileTrigger], kind: str) -> None:
    """kind is 'file' or 'transfile'."""
    for i, trig in enumerate(triggers):
        sense = file_trigger_sense(trig)
        path = w.side_file(f"{kind}trigger-{i}-{pkg.name}", trig.body)
        prio = f" -P {trig.priority}" if trig.priority else ""
        names = " ".join(escape(c.name) for c in trig.conditions)
        w.line(f"%{kind}{sense}{_name_opt(pkg, pkgset)} -p {trig.interpreter}{prio} -f {escape(path)} -- {names}")


# -----------------------
# %files
# -----------------------
def file_attributes(entry: FileEntry, mat: Materializer) -> str:
    """Attribute prefix of a manifest line; performs the entry's disk fixups."""
    attrs = ""
    set_flags = flags.decode(FileFlag, entry.flags)
    if entry.is_dir:
        attrs += "%dir "
        mat.fix_mtime(entry)
    if FileFlag.config in set_flags:
        cfg = [f.name for f in (FileFlag.missingok, FileFlag.noreplace) if f in set_flags]
        attrs += "%config" + (f"({','.join(cfg)})" if cfg else "") + " "
    for flag, marker in FILE_MARKERS:
        if flag in set_flags:
            attrs += marker + " "
    if FileFlag.ghost in set_flags:
        attrs += "%ghost "
        mat.create_ghost(entry)
    if entry.is_symlink:
        mat.touch_symlink(entry)
    else:
        attrs += f"%attr({entry.permissions:04o}, {entry.owner}, {entry.group}) "
    excluded = flags.excluded_checks(entry.verifyflags)
    if excluded:
        attrs += f"%verify(not {' '.join(excluded)}) "
    if entry.lang:
        attrs += f"%lang({entry.lang}) "
    if entry.caps:
        attrs += f"%caps({entry.caps}) "
    return attrs


def render_files(pkg: Package, pkgset: PackageSet, w: SpecWriter, mat: Materializer) -> None:
    w.line(f"%files{_name_opt(pkg, pkgset)}")
    for entry in pkg.files:
        attrs = file_attributes(entry, mat)
        name = entry.path
        if mat.wants_compression(entry):
            name = mat.queue_module(entry)
        w.line(attrs + quote_filename(name))
        if mat.has_signature(entry):
            w.line(attrs + quote_filename(entry.path + SIG_SUFFIX))


# -----------------------
# whole specfile
# -----------------------
def render_package(pkg: Package, pkgset: PackageSet, opts: RenderOptions, w: SpecWriter, mat: Materializer) -> None:
    logger.debug("rendering %s", pkg.name)
    render_payload(pkg, w)
    render_identity(pkg, pkgset, opts, w)
    render_tags(pkg, w)
    render_dependencies(pkg, w)
    if opts.cert_subpackage and pkg.is_kmp:
        w.line(f"Requires: {pkgset.kmp_basename}{CERT_REQUIRES_SUFFIX}")
    w.line(f"%description{_name_opt(pkg, pkgset)}")
    w.text(pkg.description)
    render_scripts(pkg, pkgset, w)
    render_triggers(pkg, pkgset, w)
    render_file_triggers(pkg, pkgset, w, pkg.filetriggers, "file")
    render_file_triggers(pkg, pkgset, w, pkg.transfiletriggers, "transfile")
    if not pkg.synthetic:
        render_files(pkg, pkgset, w, mat)
    w.line()


def render_specfile(pkgset: PackageSet, opts: RenderOptions, w: SpecWriter, mat: Materializer) -> None:
    if opts.macros:
        w.line(f"%{{load:{escape(opts.macros)}}}")
    for pkg in pkgset.ordered():
        render_package(pkg, pkgset, opts, w, mat)
    if opts.cert_subpackage:
        w.line(opts.cert_subpackage.rstrip("\n"))
        w.line()
    if pkgset.main.changelog.strip():
        w.line("%changelog")
        w.text(pkgset.main.changelog.rstrip("\n"))
