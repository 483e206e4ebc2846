# pesign_repackage/config.py
# -*- coding: utf-8 -*-
"""
Central configuration loader for pesign-repackage

Features:
- Read YAML config from multiple locations (explicit path, env override, cwd, user, system)
- Merge with authoritative DEFAULTS, normalize paths
- Validate structure and types with pydantic (warn or raise when fatal=True)
- Dotted access via Config.get(); command line options are applied with Config.override()
"""

from __future__ import annotations
import os
import logging
import threading
from pathlib import Path
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, List, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pesign_repackage.errors import InputError

logger = logging.getLogger("pesign_repackage.config")

ENV_VAR = "PESIGN_REPACKAGE_CONFIG"
CONFIG_NAME = "pesign-repackage.yaml"

# ----------------------------
# DEFAULT configuration (authoritative base)
# ----------------------------
DEFAULTS: Dict[str, Any] = {
    "logging": {
        "level": "INFO",
        "file": None,
        "color": True,
        "max_size": "10M",
        "backups": 3,
    },
    "repackage": {
        "directory": None,
        "output": ".",
        "cert_subpackage": None,
        "macros": None,
        "spec_name": "repackage.spec",
        "cert_dir": "etc/uefi/certs",
    },
    "rpm": {
        "binary": "rpm",
    },
    "compress": {
        "codec": None,
        "jobs": 8,
    },
}


# ----------------------------
# Validation schema
# ----------------------------
class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class LoggingSection(_Strict):
    level: str = "INFO"
    file: Optional[str] = None
    color: bool = True
    max_size: Any = "10M"
    backups: int = Field(3, ge=0)


class RepackageSection(_Strict):
    directory: Optional[str] = None
    output: str = "."
    cert_subpackage: Optional[str] = None
    macros: Optional[str] = None
    spec_name: str = "repackage.spec"
    cert_dir: str = "etc/uefi/certs"


class RpmSection(_Strict):
    binary: str = "rpm"


class CompressSection(_Strict):
    codec: Optional[Literal["xz", "gzip", "zstd"]] = None
    jobs: int = Field(8, ge=1)


class ConfigModel(_Strict):
    logging: LoggingSection
    repackage: RepackageSection
    rpm: RpmSection
    compress: CompressSection


# ----------------------------
# Dataclass to hold config
# ----------------------------
@dataclass
class Config:
    raw: Dict[str, Any] = field(default_factory=dict)     # values loaded from file (if any)
    merged: Dict[str, Any] = field(default_factory=dict)  # merged with DEFAULTS
    path: Optional[Path] = None

    def get(self, path: str, default: Any = None) -> Any:
        """Dot-separated getter for merged config."""
        parts = path.split(".") if path else []
        cur: Any = self.merged
        for p in parts:
            if isinstance(cur, dict) and p in cur:
                cur = cur[p]
            else:
                return default
        return cur

    def override(self, path: str, value: Any) -> None:
        """Set a dotted key unless value is None (unset command line option)."""
        if value is None:
            return
        parts = path.split(".")
        cur = self.merged
        for p in parts[:-1]:
            cur = cur.setdefault(p, {})
        cur[parts[-1]] = value

    def override_path(self, path: str, value: Optional[str]) -> None:
        """Like override, with the path expanded the way config file values are."""
        self.override(path, _expand_path(value) if value else None)


# ----------------------------
# Module state
# ----------------------------
_CONFIG: Optional[Config] = None
_CONFIG_LOCK = threading.RLock()


# ----------------------------
# Utilities
# ----------------------------
def _expand_path(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    return os.path.abspath(os.path.expanduser(os.path.expandvars(val)))


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    res = deepcopy(a)
    for k, v in b.items():
        if k in res and isinstance(res[k], dict) and isinstance(v, dict):
            res[k] = _deep_merge(res[k], v)
        else:
            res[k] = deepcopy(v)
    return res


def _find_candidates(explicit: Optional[str] = None) -> List[Path]:
    candidates: List[Path] = []
    env = os.environ.get(ENV_VAR)
    if explicit:
        candidates.append(Path(explicit))
    if env:
        candidates.append(Path(env))
    candidates.extend([
        Path.cwd() / CONFIG_NAME,
        Path.home() / ".config" / "pesign-repackage" / "config.yaml",
        Path("/etc") / "pesign-repackage" / "config.yaml",
    ])
    return candidates


def _load_file(path: Path) -> Dict[str, Any]:
    try:
        txt = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InputError(f"cannot read config {path}: {e}") from e
    try:
        data = yaml.safe_load(txt)
    except yaml.YAMLError as e:
        raise InputError(f"cannot parse config {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InputError(f"config {path} must be a mapping")
    return data


def _normalize(cfg: Dict[str, Any]) -> Dict[str, Any]:
    out = deepcopy(cfg)
    for section, key in (("logging", "file"), ("repackage", "cert_subpackage"), ("repackage", "macros")):
        val = out.get(section, {}).get(key)
        if isinstance(val, str) and val:
            out[section][key] = _expand_path(val)
    return out


def validate(merged: Dict[str, Any]) -> List[str]:
    """Return a list of validation issues (empty when the config is fine)."""
    try:
        ConfigModel(**merged)
    except ValidationError as e:
        return [f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()]
    return []


# ----------------------------
# Loading
# ----------------------------
def _find_path(explicit: Optional[str] = None) -> Optional[Path]:
    if explicit and not Path(explicit).exists():
        raise InputError(f"config file not found: {explicit}")
    for p in _find_candidates(explicit):
        if p.exists():
            return p
    return None


def load(explicit_path: Optional[str] = None, fatal: bool = True) -> Config:
    """
    Load and merge config. If fatal=True then validation failures raise InputError.
    Returns Config object.
    """
    global _CONFIG
    with _CONFIG_LOCK:
        cfg_path = _find_path(explicit_path)
        raw: Dict[str, Any] = _load_file(cfg_path) if cfg_path else {}
        merged = _normalize(_deep_merge(DEFAULTS, raw))
        issues = validate(merged)
        if issues:
            msg = f"config: validation issues: {issues}"
            if fatal:
                raise InputError(msg)
            logger.warning(msg)
        _CONFIG = Config(raw=raw, merged=merged, path=cfg_path)
        logger.debug("config: loaded merged config (from=%s)", str(cfg_path) if cfg_path else "<defaults>")
        return _CONFIG


def get_config() -> Config:
    global _CONFIG
    with _CONFIG_LOCK:
        if _CONFIG is None:
            _CONFIG = load()
        return _CONFIG


def reset() -> None:
    global _CONFIG
    with _CONFIG_LOCK:
        _CONFIG = None
