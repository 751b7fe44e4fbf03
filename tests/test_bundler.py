import json

import pytest

import web_inline
from conftest import StubOptimizer, decode_payload
from web_inline import (
    BundleError,
    RunContext,
    Settings,
    bundle_js,
    inline_js_scripts,
    to_data_uri,
)


def put(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        path.write_text(data, encoding="utf-8")
    else:
        path.write_bytes(data)
    return path


def esbuild_calls(log):
    return [json.loads(line) for line in log.read_text().splitlines()]


def test_bundle_arguments_and_output(ctx, project, fake_esbuild):
    entry = put(project / "main.js", "var a = 1;\n")
    assert bundle_js(ctx, entry) == "var a = 1;\n"

    (args,) = esbuild_calls(fake_esbuild)
    assert args[0] == str(entry)
    assert "--bundle" in args
    assert "--format=iife" in args
    assert "--target=es2017" in args
    assert "--minify" not in args


def test_module_format_and_minify_flags(project, stub, fake_esbuild):
    entry = put(project / "main.js", "export const a = 1;\n")
    ctx = RunContext(Settings(minify_js=True), project, optimizer=stub)
    bundle_js(ctx, entry, "esm")

    (args,) = esbuild_calls(fake_esbuild)
    assert "--format=esm" in args
    assert "--minify" in args


def test_nonzero_exit_becomes_bundle_error(ctx, project, fake_esbuild, monkeypatch):
    monkeypatch.setenv("ESBUILD_STUB_FAIL", "1")
    entry = put(project / "main.js", "import './missing.js';\n")
    with pytest.raises(BundleError, match="Could not resolve"):
        bundle_js(ctx, entry)


def test_missing_bundler_raises_bundle_error(ctx, project, monkeypatch):
    monkeypatch.setattr(web_inline.shutil, "which", lambda name: None)
    with pytest.raises(BundleError, match="esbuild"):
        bundle_js(ctx, project / "main.js")


def test_imported_module_assets_resolve_against_their_own_folder(ctx, project, fake_esbuild):
    put(project / "js" / "main.js", 'import "../lib/sprites.js";\nvar m = 1;\n')
    put(project / "lib" / "sprites.js", 'var s = "img/hero.png";\n')
    put(project / "lib" / "img" / "hero.png", b"hero")

    out = inline_js_scripts(ctx, '<script src="js/main.js"></script>', project)

    assert "img/hero.png" not in out
    assert f'var s = "{to_data_uri("image/png", b"hero")}";' in out
    assert "var m = 1;" in out
    assert out.startswith("<script>") and "src=" not in out


def test_bundling_leaves_the_source_tree_alone(ctx, project, fake_esbuild):
    main = put(project / "main.js", 'var i = "icon.png";\n')
    put(project / "icon.png", b"icon")
    inline_js_scripts(ctx, '<script src="main.js"></script>', project)

    assert main.read_text() == 'var i = "icon.png";\n'
    (args,) = esbuild_calls(fake_esbuild)
    assert not args[0].startswith(str(project))


def test_module_script_keeps_module_type(ctx, project, fake_esbuild):
    put(project / "main.js", "export const x = 1;\n")
    out = inline_js_scripts(ctx, '<script type="module" src="main.js"></script>', project)

    assert out == '<script type="module">export const x = 1;\n</script>'
    (args,) = esbuild_calls(fake_esbuild)
    assert "--format=esm" in args


def test_classic_script_drops_nothing_but_src(ctx, project, fake_esbuild):
    put(project / "main.js", "var x = 1;\n")
    out = inline_js_scripts(ctx, '<script defer src="main.js"></script>', project)
    assert out == "<script defer>var x = 1;\n</script>"


def test_bundle_failure_falls_back_to_file_text(ctx, project, fake_esbuild, monkeypatch):
    monkeypatch.setenv("ESBUILD_STUB_FAIL", "1")
    put(project / "main.js", 'console.log("icon.png");')
    put(project / "icon.png", b"icon")

    out = inline_js_scripts(ctx, '<script src="main.js"></script>', project)
    uri = out[len('<script>console.log("') : -len('");</script>')]
    assert decode_payload(uri) == ("image/png", b"icon")


def test_staged_assets_are_encoded_once(project, fake_esbuild):
    put(project / "a.js", 'var p = "pic.png";\n')
    put(project / "b.js", 'import "./a.js";\nvar q = "pic.png";\n')
    put(project / "pic.png", b"pic")
    stub = StubOptimizer()
    ctx = RunContext(Settings(), project, optimizer=stub)

    inline_js_scripts(ctx, '<script src="b.js"></script>', project)
    assert len(stub.calls) == 1
