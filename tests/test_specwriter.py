# tests/test_specwriter.py
import os

import pytest

from conftest import make_package
from pesign_repackage.errors import UnknownValueError
from pesign_repackage.flags import DepFlag, FileFlag, VerifyFlag, ModuleCodec
from pesign_repackage.materializer import Materializer
from pesign_repackage.model import (
    Dependency, FileEntry, FileTrigger, FileTriggerCondition, Script, TransFileTrigger, Trigger,
)
from pesign_repackage.pkgset import assemble
from pesign_repackage.specwriter import (
    RenderOptions, SpecWriter, dependency_line, escape, file_attributes, quote_filename, render_specfile,
)

ALL_VERIFY = 0x1ff


def render(pkgs, writer, mat, payload, **opts):
    pkgset = assemble(pkgs)
    render_specfile(pkgset, RenderOptions(payload_dir=str(payload), **opts), writer, mat)
    return writer.getvalue().splitlines()


@pytest.mark.parametrize("text", ["100%", "%{_libdir}", "no percent", "%%", "a%b%c\n%"])
def test_escape_doubles_percent_only(text):
    out = escape(text)
    assert out.count("%") == 2 * text.count("%")
    assert out.replace("%%", "%") == text


def test_quote_filename():
    assert quote_filename('/usr/a "b"\\c%d') == '"/usr/a \\"b\\"\\\\c%%d"'


def test_dependency_lines():
    assert dependency_line("Requires", Dependency("kernel", DepFlag.GREATER | DepFlag.EQUAL, "5.14")) == "Requires: kernel >= 5.14"
    assert dependency_line("Requires", Dependency("coreutils", DepFlag.pre | DepFlag.post)) == "Requires(pre,post): coreutils"
    assert dependency_line("Provides", Dependency("foo%bar")) == "Provides: foo%%bar"


@pytest.mark.parametrize("bit", [DepFlag.RPMLIB, DepFlag.CONFIG, DepFlag.FIND_REQUIRES, DepFlag.FIND_PROVIDES])
def test_internal_dependencies_never_emitted(bit, writer, mat, payload):
    pkg = make_package("foo", deps={"requires": [
        Dependency("rpmlib(PayloadIsXz)", bit | DepFlag.LESS | DepFlag.EQUAL, "5.2-1"),
        Dependency("bash"),
    ]})
    lines = render([pkg], writer, mat, payload)
    assert "Requires: bash" in lines
    assert not any("rpmlib" in l for l in lines)


def test_dependency_kinds_sorted(writer, mat, payload):
    pkg = make_package("foo", deps={
        "requires": [Dependency("a")],
        "conflicts": [Dependency("b")],
        "provides": [Dependency("c")],
    })
    lines = render([pkg], writer, mat, payload)
    deps = [l for l in lines if l.split(":")[0] in ("Requires", "Conflicts", "Provides")]
    assert deps == ["Conflicts: b", "Provides: c", "Requires: a"]


def test_verify_clause(mat):
    entry = FileEntry("/etc/foo.conf", verifyflags=ALL_VERIFY & ~(VerifyFlag.mtime | VerifyFlag.size))
    assert "%verify(not size mtime) " in file_attributes(entry, mat)
    assert "%verify" not in file_attributes(FileEntry("/etc/foo.conf", verifyflags=ALL_VERIFY), mat)


def test_file_attributes_order(mat):
    entry = FileEntry("/etc/foo.conf", flags=FileFlag.config | FileFlag.noreplace | FileFlag.missingok | FileFlag.doc,
                      mode=0o100640, owner="root", group="wheel", verifyflags=ALL_VERIFY, lang="de", caps="cap_net_raw=ep")
    assert file_attributes(entry, mat) == (
        "%config(missingok,noreplace) %doc %attr(0640, root, wheel) %lang(de) %caps(cap_net_raw=ep) ")


def test_main_and_kmp_subpackage_with_cert(writer, mat, payload):
    pkgs = [
        make_package("foo"),
        make_package("foo-kmp-default", is_kmp=True,
                     files=[FileEntry("/lib/modules/5.14/updates/foo.ko", verifyflags=ALL_VERIFY)]),
    ]
    lines = render(pkgs, writer, mat, payload, cert_subpackage="%package -n foo-kmp-ueficert\nSummary: certs\n")
    assert lines[0] == "%define _binary_payload w2.xzdio"
    assert "Name: foo" in lines
    assert f"BuildRoot: {payload}" in lines
    assert "%package -n foo-kmp-default" in lines
    sub = lines[lines.index("%package -n foo-kmp-default"):]
    assert "Requires: foo-kmp-ueficert" in sub
    main = lines[:lines.index("%package -n foo-kmp-default")]
    assert "Requires: foo-kmp-ueficert" not in main
    assert "%files -n foo-kmp-default" in lines
    assert '%attr(0644, root, root) "/lib/modules/5.14/updates/foo.ko"' in lines
    assert "%package -n foo-kmp-ueficert" in lines


def test_no_cert_requires_without_template(writer, mat, payload):
    pkgs = [make_package("foo"), make_package("foo-kmp-default", is_kmp=True)]
    lines = render(pkgs, writer, mat, payload)
    assert not any("ueficert" in l for l in lines)


def test_synthesized_nosrc_main(writer, mat, payload):
    pkg = make_package("bar-tools", sourcerpm="bar-2.0-3.nosrc.rpm", version="7", release="9",
                       files=[FileEntry("/usr/bin/bar", mode=0o100755, verifyflags=ALL_VERIFY)])
    lines = render([pkg], writer, mat, payload)
    assert lines[1:5] == ["Name: bar", f"BuildRoot: {payload}", "Source0: repackage.spec", "NoSource: 0"]
    head = lines[:lines.index("%package -n bar-tools")]
    assert "Version: 2.0" in head
    assert "Release: 3" in head
    assert "%files" not in head
    assert "%files -n bar-tools" in lines


def test_noarch_and_escaped_tags(writer, mat, payload):
    pkg = make_package("foo", arch="noarch", summary="100% pure", description="uses %{_libdir}\n")
    lines = render([pkg], writer, mat, payload)
    assert "BuildArch: noarch" in lines
    assert "Summary: 100%% pure" in lines
    assert lines[lines.index("%description") + 1] == "uses %%{_libdir}"


def test_unknown_payload_compressor(writer, mat, payload):
    with pytest.raises(UnknownValueError):
        render([make_package("foo", payload_compressor="lz4")], writer, mat, payload)


def test_scriptlets_write_side_files(writer, mat, payload, outdir):
    pkgs = [
        make_package("foo", scripts={"post": Script("/bin/sh", "ldconfig"), "pre": Script("/bin/sh", "")}),
        make_package("foo-devel", scripts={"postun": Script("<lua>", "print('x')")}),
    ]
    lines = render(pkgs, writer, mat, payload)
    post = os.path.join(str(outdir), "post-foo")
    assert f"%post -p /bin/sh -f {post}" in lines
    assert open(post).read() == "ldconfig\n"
    assert not any(l.startswith("%pre ") for l in lines)
    assert not os.path.exists(os.path.join(str(outdir), "pre-foo"))
    assert f"%postun -n foo-devel -p <lua> -f {os.path.join(str(outdir), 'postun-foo-devel')}" in lines


def test_triggers(writer, mat, payload, outdir):
    pkg = make_package("foo", triggers=[Trigger("in", "/bin/sh", "bar >= 1.0", "echo hi")])
    lines = render([pkg], writer, mat, payload)
    path = os.path.join(str(outdir), "trigger-0-foo")
    assert f"%triggerin -p /bin/sh -f {path} -- bar >= 1.0" in lines
    assert open(path).read() == "echo hi\n"


def test_file_triggers(writer, mat, payload, outdir):
    ft = FileTrigger("/bin/sh", 0, "1000", "update-cache",
                     (FileTriggerCondition("/usr/lib/A", "", 65536), FileTriggerCondition("/usr/lib/C", "", 65536)))
    tft = TransFileTrigger("/bin/sh", 0, "", "rebuild", (FileTriggerCondition("/usr/share/B", "", 262144),))
    pkgs = [make_package("foo"), make_package("foo-x", filetriggers=[ft], transfiletriggers=[tft])]
    lines = render(pkgs, writer, mat, payload)
    f0 = os.path.join(str(outdir), "filetrigger-0-foo-x")
    t0 = os.path.join(str(outdir), "transfiletrigger-0-foo-x")
    assert f"%filetriggerin -n foo-x -p /bin/sh -P 1000 -f {f0} -- /usr/lib/A /usr/lib/C" in lines
    assert f"%transfiletriggerpostun -n foo-x -p /bin/sh -f {t0} -- /usr/share/B" in lines


def test_file_trigger_unknown_sense(writer, mat, payload):
    ft = FileTrigger("/bin/sh", 0, "", "x", (FileTriggerCondition("/a", "", 1 << 25),))
    with pytest.raises(UnknownValueError, match="unsupported sense"):
        render([make_package("foo", filetriggers=[ft])], writer, mat, payload)


def test_ghost_regular_file_created_sparse(writer, mat, payload):
    entry = FileEntry("/var/lib/foo/state", flags=FileFlag.ghost, mode=0o100644, size=4096, mtime=1234567,
                      verifyflags=ALL_VERIFY)
    lines = render([make_package("foo", files=[entry])], writer, mat, payload)
    path = payload / "var/lib/foo/state"
    assert path.is_file()
    assert path.stat().st_size == 4096
    assert int(path.stat().st_mtime) == 1234567
    assert '%ghost %attr(0644, root, root) "/var/lib/foo/state"' in lines


def test_directory_mtime_fixed(writer, mat, payload):
    (payload / "usr/share/foo").mkdir(parents=True)
    entry = FileEntry("/usr/share/foo", mode=0o40755, mtime=1000000, verifyflags=ALL_VERIFY)
    lines = render([make_package("foo", files=[entry])], writer, mat, payload)
    assert int((payload / "usr/share/foo").stat().st_mtime) == 1000000
    assert '%dir %attr(0755, root, root) "/usr/share/foo"' in lines


def test_symlink_has_no_attr(writer, mat, payload):
    entry = FileEntry("/usr/lib/libfoo.so", mode=0o120777, linkto="libfoo.so.1", verifyflags=ALL_VERIFY)
    lines = render([make_package("foo", files=[entry])], writer, mat, payload)
    assert '"/usr/lib/libfoo.so"' in lines


def test_signature_sibling_listed(writer, mat, payload):
    (payload / "boot").mkdir()
    (payload / "boot/vmlinuz").write_bytes(b"k")
    (payload / "boot/vmlinuz.sig").write_bytes(b"s")
    entry = FileEntry("/boot/vmlinuz", verifyflags=ALL_VERIFY)
    lines = render([make_package("foo", files=[entry])], writer, mat, payload)
    assert '%attr(0644, root, root) "/boot/vmlinuz"' in lines
    assert '%attr(0644, root, root) "/boot/vmlinuz.sig"' in lines


def test_kernel_module_compression_name(writer, payload):
    (payload / "lib/modules").mkdir(parents=True)
    (payload / "lib/modules/foo.ko").write_bytes(b"\x7fELF")
    mat = Materializer(str(payload), ModuleCodec("xz", ".xz", ("true",)))
    entry = FileEntry("/lib/modules/foo.ko", mode=0o100600, mtime=2000, verifyflags=ALL_VERIFY)
    lines = render([make_package("foo", files=[entry])], writer, mat, payload)
    assert '%attr(0600, root, root) "/lib/modules/foo.ko.xz"' in lines
    assert mat.queued == [str(payload / "lib/modules/foo.ko")]
    st = (payload / "lib/modules/foo.ko").stat()
    assert st.st_mode & 0o777 == 0o600
    assert int(st.st_mtime) == 2000


def test_macros_and_changelog(writer, mat, payload):
    pkg = make_package("foo", changelog="* Mon Jan 01 2024 dev\n- fix 100%\n\n")
    lines = render([pkg], writer, mat, payload, macros="/usr/lib/rpm/macros.d/macros.kernel")
    assert lines[0] == "%{load:/usr/lib/rpm/macros.d/macros.kernel}"
    assert lines[-3:] == ["%changelog", "* Mon Jan 01 2024 dev", "- fix 100%%"]


def test_file_trigger_without_conditions_cannot_render(writer, mat, payload):
    ft = FileTrigger("/bin/sh", 0, "", "x", ())
    with pytest.raises(UnknownValueError, match="without conditions"):
        render([make_package("foo", filetriggers=[ft])], writer, mat, payload)


def test_percent_in_paths_escaped(tmp_path):
    payload = tmp_path / "pay%{_libdir}"
    payload.mkdir()
    out = tmp_path / "out%{dist}"
    out.mkdir()
    writer = SpecWriter(str(out))
    pkg = make_package("foo", scripts={"post": Script("/bin/sh", "true")})
    lines = render([pkg], writer, Materializer(str(payload)), payload, macros="/etc/rpm/macros.%{arch}")
    assert lines[0] == "%{load:/etc/rpm/macros.%%{arch}}"
    assert f"BuildRoot: {tmp_path}/pay%%{{_libdir}}" in lines
    assert f"%post -p /bin/sh -f {tmp_path}/out%%{{dist}}/post-foo" in lines
    assert (out / "post-foo").read_text() == "true\n"
