# pesign_repackage/certs.py
# -*- coding: utf-8 -*-
"""
UEFI certificate subpackage: discovery of the certificates shipped in the
payload and substitution of the subpackage template.
"""

from __future__ import annotations

import os
from typing import List

from pesign_repackage.errors import OutputError
from pesign_repackage.logging import get_logger

logger = get_logger("certs")

CERT_SUFFIX = ".crt"
NAME_PLACEHOLDER = "@NAME@"
CERTS_PLACEHOLDER = "@CERTS@"


def find_certificates(payload_dir: str, cert_dir: str = "etc/uefi/certs") -> List[str]:
    """Names of the *.crt files under <payload>/<cert_dir>, without suffix."""
    path = os.path.join(payload_dir, cert_dir)
    certs: List[str] = []
    if not os.path.isdir(path):
        return certs
    for entry in sorted(os.listdir(path)):
        if entry.endswith(CERT_SUFFIX):
            certs.append(entry[:-len(CERT_SUFFIX)])
        else:
            logger.warning("ignoring non-certificate file %s in %s", entry, cert_dir)
    return certs


def read_template(path: str) -> str:
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise OutputError(f"cannot read certificate subpackage template {path}: {e}") from e


def render_cert_subpackage(template: str, kmp_basename: str, certs: List[str]) -> str:
    if not certs:
        logger.warning("certificate subpackage requested but no certificates found")
    return template.replace(NAME_PLACEHOLDER, kmp_basename).replace(CERTS_PLACEHOLDER, " ".join(certs))
