#!/usr/bin/env python3
# pesign_repackage/cli.py
"""
pesign-gen-repackage-spec - regenerate a specfile that rebuilds the given RPMs
from a (re-signed) payload directory

How it works:
- options come from the command line, falling back to the YAML config file
- every RPM is queried with `rpm -qp --qf`, the packages are assembled into a set
- repackage.spec and the scriptlet side-files are written to the output directory
- kernel modules are compressed afterwards if --compress was given
"""

from __future__ import annotations

import os
import sys
import argparse
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pesign_repackage import config as config_mod
from pesign_repackage import logging as log_mod
from pesign_repackage.certs import find_certificates, read_template, render_cert_subpackage
from pesign_repackage.errors import InputError, RepackageError
from pesign_repackage.flags import MODULE_CODECS, module_codec
from pesign_repackage.loader import load_package
from pesign_repackage.materializer import Materializer
from pesign_repackage.pkgset import PackageSet, assemble
from pesign_repackage.query import RpmQuery
from pesign_repackage.specwriter import RenderOptions, SpecWriter, render_specfile

logger = log_mod.get_logger("cli")
console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="pesign-gen-repackage-spec",
                                 description="Generate a specfile to repackage RPMs with modified file content")
    ap.add_argument("-d", "--directory", help="payload directory (absolute path)")
    ap.add_argument("-o", "--output", help="output directory for the specfile and script side-files")
    ap.add_argument("-c", "--cert-subpackage", help="certificate subpackage template")
    ap.add_argument("--compress", choices=sorted(MODULE_CODECS), help="compress kernel modules with this codec")
    ap.add_argument("--macros", help="macro file loaded at the top of the specfile")
    ap.add_argument("--config", help="explicit config file")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug output")
    ap.add_argument("rpms", nargs="*", help="binary RPMs built from one source package")
    return ap


def apply_args(cfg: config_mod.Config, args: argparse.Namespace) -> None:
    cfg.override("repackage.directory", args.directory)
    cfg.override("repackage.output", args.output)
    cfg.override_path("repackage.cert_subpackage", args.cert_subpackage)
    cfg.override_path("repackage.macros", args.macros)
    cfg.override("compress.codec", args.compress)


def check_payload_dir(directory: Optional[str]) -> str:
    if not directory:
        raise InputError("no payload directory given (--directory)")
    if not os.path.isabs(directory):
        raise InputError(f"payload directory must be an absolute path: {directory}")
    if not os.path.isdir(directory):
        raise InputError(f"payload directory does not exist: {directory}")
    return directory


def load_packages(rpms: List[str], rpm_binary: str = "rpm") -> PackageSet:
    if not rpms:
        raise InputError("no packages given")
    return assemble([load_package(RpmQuery(rpm, rpm_binary)) for rpm in rpms])


def generate(cfg: config_mod.Config, pkgset: PackageSet) -> str:
    """Write the specfile for pkgset and return its path."""
    payload_dir = check_payload_dir(cfg.get("repackage.directory"))
    output = os.path.abspath(cfg.get("repackage.output") or ".")
    os.makedirs(output, exist_ok=True)

    cert_text = None
    template = cfg.get("repackage.cert_subpackage")
    if template:
        certs = find_certificates(payload_dir, cfg.get("repackage.cert_dir"))
        cert_text = render_cert_subpackage(read_template(template), pkgset.kmp_basename, certs)

    codec_name = cfg.get("compress.codec")
    codec = module_codec(codec_name) if codec_name else None
    mat = Materializer(payload_dir, codec, jobs=int(cfg.get("compress.jobs", 8)))
    writer = SpecWriter(output)
    opts = RenderOptions(payload_dir=payload_dir, cert_subpackage=cert_text, macros=cfg.get("repackage.macros"))

    render_specfile(pkgset, opts, writer, mat)
    spec_path = os.path.join(output, cfg.get("repackage.spec_name"))
    writer.write_to(spec_path)
    logger.info("wrote %s (%d side-files)", spec_path, len(writer.side_files))
    mat.compress_queued()
    return spec_path


def print_summary(pkgset: PackageSet, spec_path: str) -> None:
    table = Table(title=os.path.basename(spec_path))
    table.add_column("package")
    table.add_column("arch")
    table.add_column("files", justify="right")
    table.add_column("kmp")
    for pkg in pkgset.ordered():
        table.add_row(pkg.name + (" (main)" if pkg.name == pkgset.main_name else ""),
                      pkg.arch, str(len(pkg.files)), "yes" if pkg.is_kmp else "")
    console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = config_mod.load(args.config)
        apply_args(cfg, args)
        log_mod.configure(cfg.get("logging", {}), verbose=args.verbose)
        check_payload_dir(cfg.get("repackage.directory"))
        pkgset = load_packages(args.rpms, cfg.get("rpm.binary"))
        spec_path = generate(cfg, pkgset)
    except RepackageError as e:
        console.print(f"[bold red]error:[/bold red] {escape(str(e))}", highlight=False)
        return 1
    if args.verbose:
        print_summary(pkgset, spec_path)
    warnings = log_mod.get_metrics().get("WARNING", 0)
    if warnings:
        console.print(f"[yellow]{warnings} warning(s)[/yellow]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
