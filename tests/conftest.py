# tests/conftest.py
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import pytest

from pesign_repackage import config as config_mod
from pesign_repackage.materializer import Materializer
from pesign_repackage.model import FileEntry, Package
from pesign_repackage.specwriter import SpecWriter


class FakeQuery:
    """In-memory stand-in for RpmQuery."""

    def __init__(self, scalars: Optional[Dict[str, str]] = None,
                 arrays: Optional[Dict[Tuple[str, ...], List[List[str]]]] = None,
                 multiline: Optional[Dict[str, List[str]]] = None,
                 changelog: str = ""):
        self.scalars = scalars or {}
        self.arrays = arrays or {}
        self.multiline = multiline or {}
        self._changelog = changelog

    def scalar(self, tag: str) -> str:
        return self.scalars.get(tag, "")

    def array(self, *tags: str) -> List[List[str]]:
        return [list(r) for r in self.arrays.get(tags, [])]

    def multiline_array(self, tag: str) -> List[str]:
        return list(self.multiline.get(tag, []))

    def changelog(self) -> str:
        return self._changelog


def make_package(name: str, **kw) -> Package:
    defaults = dict(
        arch="x86_64",
        sourcerpm="foo-1.0-1.src.rpm",
        version="1.0",
        release="1",
        license="GPL-2.0",
        summary=f"{name} summary",
        description=f"{name} description",
        payload_compressor="xz",
        payload_flags="2",
    )
    defaults.update(kw)
    return Package(name=name, **defaults)


@pytest.fixture
def payload(tmp_path):
    d = tmp_path / "payload"
    d.mkdir()
    return d


@pytest.fixture
def outdir(tmp_path):
    d = tmp_path / "out"
    d.mkdir()
    return d


@pytest.fixture
def writer(outdir):
    return SpecWriter(str(outdir))


@pytest.fixture
def mat(payload):
    return Materializer(str(payload))


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    monkeypatch.delenv(config_mod.ENV_VAR, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    config_mod.reset()
    yield
    config_mod.reset()


__all__ = ["FakeQuery", "make_package", "FileEntry"]
