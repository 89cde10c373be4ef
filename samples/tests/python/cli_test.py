"""Tests for the command line interface"""

from witxgen import bindings, cli

WITX = '''
(typename $errno (enum (@witx tag u16) $success $inval))
(module $test_mod
  (import "memory" (memory))
  (@interface func (export "foo")
    (param $x u32)
    (result $error (expected (error $errno))))
)
'''

TWO_RESULTS = '''
(typename $errno (enum (@witx tag u16) $success $inval))
(module $test_mod
  (@interface func (export "ok")
    (result $error (expected (error $errno))))
  (@interface func (export "two")
    (result $a $errno)
    (result $b $errno))
)
'''


def test_generate(tmp_path, capsys):
    witx = tmp_path / "api.witx"
    witx.write_text(WITX)
    stem = tmp_path / "out" / "api"

    assert cli.main(["generate", str(witx), "-o", str(stem)]) == 0

    module = tmp_path / "out" / "api.module.go"
    types = tmp_path / "out" / "api.types.go"
    stubs = tmp_path / "out" / "api.stubs.go"
    for path in (module, types, stubs):
        assert path.read_text().startswith("// THIS FILE IS AUTO-GENERATED")
    assert "//   api.witx\n" in module.read_text()
    assert "package wasi\n" in stubs.read_text()

    out = capsys.readouterr().out
    assert f"Generated: {module}" in out
    assert "Generation completed in" in out


def test_generate_package(tmp_path):
    witx = tmp_path / "api.witx"
    witx.write_text(WITX)
    stem = tmp_path / "api"

    assert cli.main(["generate", str(witx), "-o", str(stem), "--package", "host"]) == 0
    assert "package host\n" in (tmp_path / "api.types.go").read_text()


def test_unsupported_result_count_writes_nothing(tmp_path, capsys):
    witx = tmp_path / "api.witx"
    witx.write_text(TWO_RESULTS)

    assert cli.main(["generate", str(witx), "-o", str(tmp_path / "api")]) != 0

    err = capsys.readouterr().err
    assert err.startswith("error: ")
    assert "unsupported number of return values" in err
    assert list(tmp_path.iterdir()) == [witx]


def test_load_error(tmp_path, capsys):
    assert cli.main(["generate", str(tmp_path / "missing.witx"), "-o", str(tmp_path / "api")]) == 1
    assert "error: " in capsys.readouterr().err
    assert list(tmp_path.iterdir()) == []


def test_output_error(tmp_path, capsys):
    witx = tmp_path / "api.witx"
    witx.write_text(WITX)
    blocker = tmp_path / "blocker"
    blocker.write_text("")

    assert cli.main(["generate", str(witx), "-o", str(blocker / "api")]) == 1
    assert "cannot write" in capsys.readouterr().err


def test_generate_api(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(cli, "api_output_paths", lambda: bindings.api_output_paths(tmp_path))

    assert cli.main(["generate-api"]) == 0

    module = (tmp_path / "module_definition.go").read_text()
    assert "//   typenames.witx, wasi_snapshot_preview1.witx\n" in module
    assert "//     python bin/generate_bindings.py generate-api\n" in module
    assert "type wasiErrno = uint16\n" in (tmp_path / "types.go").read_text()
    assert "type wasiSnapshotPreview1Impl struct {" in (tmp_path / "stubs.go").read_text()
    assert capsys.readouterr().out.count("Generated: ") == 3


def test_verbose(tmp_path):
    witx = tmp_path / "api.witx"
    witx.write_text(WITX)
    assert cli.main(["--verbose", "generate", str(witx), "-o", str(tmp_path / "api")]) == 0
