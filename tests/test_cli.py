# tests/test_cli.py
import os

from conftest import make_package
from pesign_repackage import cli
from pesign_repackage.model import FileEntry
from pesign_repackage.pkgset import assemble

TEMPLATE = "%package -n @NAME@-kmp-ueficert\nSummary: certificates @CERTS@\n"


def test_missing_directory_fails(capsys):
    assert cli.main(["foo.rpm"]) == 1
    assert "payload directory" in capsys.readouterr().err


def test_relative_directory_fails(capsys, payload):
    assert cli.main(["-d", "payload", "foo.rpm"]) == 1
    assert "absolute" in capsys.readouterr().err


def test_no_packages_fails(capsys, payload):
    assert cli.main(["-d", str(payload)]) == 1
    assert "no packages" in capsys.readouterr().err


def test_query_error_is_reported(capsys, payload, tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("rpm:\n  binary: \"false\"\n")
    assert cli.main(["--config", str(cfg), "-d", str(payload), "foo.rpm"]) == 1
    assert "error" in capsys.readouterr().err


def test_end_to_end(monkeypatch, payload, outdir):
    certs = payload / "etc/uefi/certs"
    certs.mkdir(parents=True)
    (certs / "ABCD.crt").write_text("x")
    template = outdir.parent / "ueficert.spec.in"
    template.write_text(TEMPLATE)
    pkgs = [
        make_package("foo", scripts={}),
        make_package("foo-kmp-default", is_kmp=True,
                     files=[FileEntry("/lib/modules/5.14/updates/foo.ko", verifyflags=0x1ff)]),
    ]
    seen = {}

    def fake_load(rpms, rpm_binary="rpm"):
        seen["rpms"] = rpms
        return assemble(pkgs)

    monkeypatch.setattr(cli, "load_packages", fake_load)
    rc = cli.main(["-d", str(payload), "-o", str(outdir), "-c", str(template), "a.rpm", "b.rpm"])
    assert rc == 0
    assert seen["rpms"] == ["a.rpm", "b.rpm"]
    spec = (outdir / "repackage.spec").read_text()
    assert "Name: foo\n" in spec
    assert "%package -n foo-kmp-default\n" in spec
    assert "Requires: foo-kmp-ueficert\n" in spec
    assert "%package -n foo-kmp-ueficert\nSummary: certificates ABCD\n" in spec
    assert os.path.isfile(outdir / "repackage.spec")


def test_missing_kernel_module_is_reported(monkeypatch, capsys, payload, outdir):
    pkg = make_package("foo", files=[FileEntry("/lib/modules/foo.ko", verifyflags=0x1ff)])
    monkeypatch.setattr(cli, "load_packages", lambda rpms, rpm_binary="rpm": assemble([pkg]))
    rc = cli.main(["-d", str(payload), "-o", str(outdir), "--compress", "xz", "a.rpm"])
    assert rc == 1
    assert "/lib/modules/foo.ko" in capsys.readouterr().err
