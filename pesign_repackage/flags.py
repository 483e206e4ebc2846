# pesign_repackage/flags.py
# -*- coding: utf-8 -*-
"""
Bit-flag taxonomies found in RPM headers.

Features:
 - DepFlag: dependency sense bits (operators, scriptlet association, internal bits)
 - FileFlag: %config/%doc/%ghost/... file attributes
 - VerifyFlag: per-file verify mask (inverted when rendered as %verify(not ...))
 - TriggerSense: file trigger sense codes
 - payload compressor and kernel module compression tables
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple, Type, TypeVar

from pesign_repackage.errors import UnknownValueError

logger = logging.getLogger("pesign_repackage.flags")

F = TypeVar("F", bound=enum.IntFlag)


def decode(flag_type: Type[F], mask: int) -> List[F]:
    """Return the members of flag_type set in mask, in declaration order.

    Bits that no member covers are dropped and reported at debug level.
    """
    mask = int(mask)
    matched: List[F] = []
    known = 0
    for member in flag_type.__members__.values():
        known |= member.value
        if member.value and mask & member.value == member.value:
            matched.append(member)
    unknown = mask & ~known
    if unknown:
        logger.debug("flags: ignoring unknown %s bits 0x%x", flag_type.__name__, unknown)
    return matched


# ----------------------
# Dependency sense
# ----------------------
class DepFlag(enum.IntFlag):
    LESS = 1 << 1
    GREATER = 1 << 2
    EQUAL = 1 << 3
    # scriptlet association, rendered as Requires(<name>,...)
    interp = 1 << 8
    pre = 1 << 9
    post = 1 << 10
    preun = 1 << 11
    postun = 1 << 12
    pretrans = 1 << 7
    posttrans = 1 << 5
    verify = 1 << 13
    # set by rpmbuild itself
    FIND_REQUIRES = 1 << 14
    FIND_PROVIDES = 1 << 15
    RPMLIB = 1 << 24
    CONFIG = 1 << 28


DEP_OPERATORS: Tuple[Tuple[DepFlag, str], ...] = (
    (DepFlag.LESS, "<"),
    (DepFlag.GREATER, ">"),
    (DepFlag.EQUAL, "="),
)

DEP_SCRIPTLETS: Tuple[DepFlag, ...] = (
    DepFlag.interp,
    DepFlag.pre,
    DepFlag.post,
    DepFlag.preun,
    DepFlag.postun,
    DepFlag.pretrans,
    DepFlag.posttrans,
    DepFlag.verify,
)

DEP_INTERNAL = DepFlag.FIND_REQUIRES | DepFlag.FIND_PROVIDES | DepFlag.RPMLIB | DepFlag.CONFIG


def dep_is_internal(flags: int) -> bool:
    return bool(int(flags) & DEP_INTERNAL)


def dep_operator(flags: int) -> str:
    return "".join(sym for bit, sym in DEP_OPERATORS if int(flags) & bit)


def dep_qualifiers(flags: int) -> List[str]:
    return [bit.name for bit in decode(DepFlag, flags) if bit in DEP_SCRIPTLETS]


# ----------------------
# File attributes
# ----------------------
class FileFlag(enum.IntFlag):
    config = 1 << 0
    doc = 1 << 1
    missingok = 1 << 3
    noreplace = 1 << 4
    ghost = 1 << 6
    license = 1 << 7
    readme = 1 << 8
    pubkey = 1 << 11
    artifact = 1 << 12


# ----------------------
# Verify flags
# ----------------------
class VerifyFlag(enum.IntFlag):
    filedigest = 1 << 0
    size = 1 << 1
    link = 1 << 2
    user = 1 << 3
    group = 1 << 4
    mtime = 1 << 5
    mode = 1 << 6
    rdev = 1 << 7
    caps = 1 << 8


def excluded_checks(verifyflags: int) -> List[str]:
    """Checks whose bit is missing from the mask, i.e. %verify(not ...) entries."""
    kept = decode(VerifyFlag, verifyflags)
    return [f.name for f in VerifyFlag if f not in kept]


# ----------------------
# File trigger sense
# ----------------------
class TriggerSense(enum.IntEnum):
    triggerin = 1 << 16
    triggerun = 1 << 17
    triggerpostun = 1 << 18


def sense_keyword(code: int) -> str:
    try:
        return TriggerSense(int(code)).name
    except ValueError:
        raise UnknownValueError(f"unsupported sense: {code}") from None


# ----------------------
# Payload compressors
# ----------------------
PAYLOAD_CODECS: Dict[str, str] = {
    "gzip": "gzdio",
    "bzip2": "bzdio",
    "xz": "xzdio",
    "lzma": "lzdio",
    "zstd": "zstdio",
}


def payload_codec(compressor: str) -> str:
    try:
        return PAYLOAD_CODECS[compressor]
    except KeyError:
        raise UnknownValueError(f"unknown payload compressor: {compressor!r}") from None


# ----------------------
# Kernel module compression
# ----------------------
@dataclass(frozen=True)
class ModuleCodec:
    name: str
    extension: str
    command: Tuple[str, ...]


MODULE_CODECS: Dict[str, ModuleCodec] = {
    "xz": ModuleCodec("xz", ".xz", ("xz", "-f", "--check=crc32", "--lzma2=dict=1MiB")),
    "gzip": ModuleCodec("gzip", ".gz", ("gzip", "-f", "-n", "-9")),
    "zstd": ModuleCodec("zstd", ".zst", ("zstd", "-f", "-q", "--rm", "-T1", "-19")),
}


def module_codec(name: str) -> ModuleCodec:
    try:
        return MODULE_CODECS[name]
    except KeyError:
        raise UnknownValueError(f"unsupported module compression: {name!r}") from None
