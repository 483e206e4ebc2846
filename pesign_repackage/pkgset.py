# pesign_repackage/pkgset.py
# -*- coding: utf-8 -*-
"""
pkgset.py - the set of binary packages built from one source package

Features:
- enforce a single shared SOURCERPM across all packages
- derive the main package name/version/release from SOURCERPM
- synthesize the main package when it was not among the inputs
- nosource marker (*.nosrc.rpm)
- KMP basename shared by all kernel module packages
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from pesign_repackage.errors import InputError
from pesign_repackage.logging import get_logger
from pesign_repackage.model import SIMPLE_TAGS, Package

logger = get_logger("pkgset")

SOURCERPM_RE = re.compile(r"^(?P<name>.+)-(?P<version>[^-]+)-(?P<release>[^-]+)\.(?P<nosrc>no)?src\.rpm$")
KMP_RE = re.compile(r"-kmp-.*$")

# attributes the synthesized main package inherits from an existing one
INHERITED = ("description", "changelog", "payload_compressor", "payload_flags") + tuple(
    attr for _, attr in SIMPLE_TAGS if attr not in ("version", "release")
)


@dataclass
class SourceRpm:
    name: str
    version: str
    release: str
    nosource: bool

    @classmethod
    def parse(cls, sourcerpm: str) -> "SourceRpm":
        m = SOURCERPM_RE.match(sourcerpm)
        if not m:
            raise InputError(f"malformed SOURCERPM tag: {sourcerpm!r}")
        return cls(m.group("name"), m.group("version"), m.group("release"), bool(m.group("nosrc")))


def kmp_basename(packages: List[Package], fallback: str) -> str:
    """Common name of the KMPs without their -kmp-<flavor> suffix, else fallback."""
    names = {KMP_RE.sub("", p.name) for p in packages if p.is_kmp}
    if len(names) == 1:
        return names.pop()
    if len(names) > 1:
        logger.debug("KMPs disagree on basename (%s), using %s", ", ".join(sorted(names)), fallback)
    return fallback


@dataclass
class PackageSet:
    packages: Dict[str, Package] = field(default_factory=dict)
    sourcerpm: str = ""
    main_name: str = ""
    kmp_basename: str = ""
    source: Optional[SourceRpm] = None

    def add(self, pkg: Package) -> None:
        if not self.packages:
            self.sourcerpm = pkg.sourcerpm
        elif pkg.sourcerpm != self.sourcerpm:
            raise InputError(
                f"{pkg.name}: SOURCERPM {pkg.sourcerpm!r} differs from {self.sourcerpm!r}; "
                "all packages must be built from the same source package")
        if pkg.name in self.packages:
            raise InputError(f"package {pkg.name} given more than once")
        self.packages[pkg.name] = pkg

    def finalize(self) -> None:
        """Derive the main package, synthesizing it if needed, and the KMP basename."""
        if not self.packages:
            raise InputError("no packages given")
        self.source = SourceRpm.parse(self.sourcerpm)
        self.main_name = self.source.name
        if self.main_name not in self.packages:
            self.packages[self.main_name] = self._synthesize_main()
        self.main.nosource = self.source.nosource
        self.kmp_basename = kmp_basename(list(self.packages.values()), self.main_name)

    def _synthesize_main(self) -> Package:
        existing = [self.packages[n] for n in sorted(self.packages)]
        template = existing[0]
        main = Package(
            name=self.main_name,
            sourcerpm=self.sourcerpm,
            version=self.source.version,
            release=self.source.release,
            synthetic=True,
        )
        for attr in INHERITED:
            if not getattr(main, attr):
                setattr(main, attr, getattr(template, attr))
        main.arch = next((p.arch for p in existing if p.arch != "noarch"), "noarch")
        logger.info("main package %s not given, synthesized from %s (arch %s)", self.main_name, template.name, main.arch)
        return main

    @property
    def main(self) -> Package:
        return self.packages[self.main_name]

    def ordered(self) -> Iterator[Package]:
        """Main package first, then the rest sorted by name."""
        yield self.main
        for name in sorted(self.packages):
            if name != self.main_name:
                yield self.packages[name]


def assemble(packages: List[Package]) -> PackageSet:
    pkgset = PackageSet()
    for pkg in packages:
        pkgset.add(pkg)
    pkgset.finalize()
    return pkgset
