# pesign_repackage/logging.py
# -*- coding: utf-8 -*-
"""
pesign-repackage logging

Features:
 - Console color formatter (stderr, so the specfile can go to stdout pipelines)
 - Rotating file handler
 - Per-module LoggerAdapter injecting 'repackage_module'
 - Warning/error counters reported by the CLI at the end of a run
"""

from __future__ import annotations
import sys
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import Dict, Any, Optional, List

_logger = logging.getLogger("pesign_repackage.logging")

DEFAULT_FORMAT = "[%(levelname)s] [%(repackage_module)s] %(message)s"


# ----------------------
# Color formatter
# ----------------------
class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[37m",    # light gray
        logging.INFO: "\033[36m",     # cyan
        logging.WARNING: "\033[33m",  # yellow
        logging.ERROR: "\033[31m",    # red
        logging.CRITICAL: "\033[41;37m", # white on red
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str = None, datefmt: str = None, color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.color = color

    def format(self, record):
        if not hasattr(record, "repackage_module"):
            record.repackage_module = record.name
        msg = super().format(record)
        if self.color:
            color = self.COLORS.get(record.levelno, "")
            return f"{color}{msg}{self.RESET}"
        return msg


# ----------------------
# Size helper
# ----------------------
def _parse_size(s: Any) -> Optional[int]:
    if s is None:
        return None
    if isinstance(s, int):
        return s
    ss = str(s).strip().upper()
    for suffix, mul in (("KB", 1024), ("K", 1024), ("MB", 1024**2), ("M", 1024**2), ("GB", 1024**3), ("G", 1024**3)):
        if ss.endswith(suffix):
            try:
                return int(float(ss[:-len(suffix)]) * mul)
            except ValueError:
                break
    try:
        return int(float(ss))
    except ValueError:
        _logger.debug("logging: parse size failed for %s", s)
        return None


# ----------------------
# RepackageLogger (singleton)
# ----------------------
class RepackageLogger:
    _instance = None
    _singleton_lock = threading.Lock()

    def __new__(cls):
        with cls._singleton_lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._inited = False
        return cls._instance

    def __init__(self):
        if self._inited:
            return
        self._lock = threading.RLock()
        self._root = logging.getLogger("pesign_repackage")
        self._root.setLevel(logging.INFO)
        self._handlers: List[logging.Handler] = []
        self._metrics: Dict[str, int] = {lvl: 0 for lvl in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")}
        self._root.addFilter(self._count_levels_filter)
        self._inited = True

    def _count_levels_filter(self, record):
        if record.levelname in self._metrics:
            self._metrics[record.levelname] += 1
        return True

    def configure(self, cfg: Dict[str, Any], verbose: bool = False):
        """Apply the 'logging' config section, replacing earlier handlers."""
        with self._lock:
            for h in list(self._handlers):
                self._root.removeHandler(h)
                h.close()
            self._handlers.clear()

            level = logging.DEBUG if verbose else getattr(logging, str(cfg.get("level", "INFO")).upper(), logging.INFO)
            fmt = cfg.get("format") or DEFAULT_FORMAT

            ch = logging.StreamHandler(sys.stderr)
            ch.setLevel(level)
            color = bool(cfg.get("color", True)) and sys.stderr.isatty()
            ch.setFormatter(ColorFormatter(fmt, color=color))
            self._root.addHandler(ch)
            self._handlers.append(ch)

            if cfg.get("file"):
                file_path = Path(cfg["file"]).expanduser()
                file_path.parent.mkdir(parents=True, exist_ok=True)
                max_bytes = _parse_size(cfg.get("max_size", "10M")) or 10 * 1024 * 1024
                fh = logging.handlers.RotatingFileHandler(str(file_path), maxBytes=max_bytes, backupCount=int(cfg.get("backups", 3)), encoding="utf-8")
                fh.setLevel(logging.DEBUG)
                fh.setFormatter(ColorFormatter("%(asctime)s " + fmt, datefmt="%H:%M:%S", color=False))
                self._root.addHandler(fh)
                self._handlers.append(fh)

            self._root.setLevel(min(level, logging.DEBUG if cfg.get("file") else level))

    def get_logger(self, module_name: str) -> logging.LoggerAdapter:
        """Return a LoggerAdapter that injects 'repackage_module' into records."""
        return logging.LoggerAdapter(self._root, {"repackage_module": module_name})

    def get_metrics(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._metrics)


# ----------------------
# Public factory
# ----------------------
_GLOBAL_LOGGER = RepackageLogger()

def get_logger(module: str) -> logging.LoggerAdapter:
    return _GLOBAL_LOGGER.get_logger(module)

def configure(cfg: Dict[str, Any], verbose: bool = False):
    return _GLOBAL_LOGGER.configure(cfg, verbose=verbose)

def get_metrics() -> Dict[str, int]:
    return _GLOBAL_LOGGER.get_metrics()
