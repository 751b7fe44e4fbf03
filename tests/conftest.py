import base64
import os
import random
import re
import sys
from pathlib import Path
from threading import Lock

import pytest
from PIL import Image

import web_inline
from web_inline import OptimizeResult, RunContext, Settings


class StubOptimizer:
    """Counts calls; optionally trims bytes, swaps the mime, or raises."""

    def __init__(self, trim=None, raises=False, mime=None):
        self.trim = trim
        self.raises = raises
        self.mime = mime
        self.calls = []
        self._lock = Lock()

    def optimize(self, data, mime):
        with self._lock:
            self.calls.append((mime, len(data)))
        if self.raises:
            raise RuntimeError("codec exploded")
        if self.trim is None:
            return OptimizeResult(data)
        return OptimizeResult(self.trim(data), changed=True, mime=self.mime)


class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}


class FakeSession:
    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append(url)
        if url not in self.routes:
            raise web_inline.requests.ConnectionError(f"offline: {url}")
        return self.routes[url]


def make_png(path: Path, size=(16, 16), color=(200, 30, 30)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path, format="PNG")
    return path


def make_noisy_image(path: Path, fmt: str, size=(64, 64), **save_kwargs) -> Path:
    rnd = random.Random(7)
    img = Image.new("RGB", size)
    img.putdata(
        [
            (rnd.randrange(256), rnd.randrange(256), rnd.randrange(256))
            for _ in range(size[0] * size[1])
        ]
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path, format=fmt, **save_kwargs)
    return path


def decode_payload(uri: str):
    m = re.match(r"^data:([^;,]+);base64,(.*)$", uri, re.S)
    assert m, f"not a base64 payload: {uri[:60]}"
    return m.group(1), base64.b64decode(m.group(2))


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "proj"
    root.mkdir()
    return root


@pytest.fixture
def stub():
    return StubOptimizer()


@pytest.fixture
def ctx(project, stub):
    return RunContext(Settings(workers=4), project, optimizer=stub)


# Concatenates `import "./x.js";` targets ahead of the importing file, which
# is enough of a bundler to see what each module contributed.
ESBUILD_STUB = r'''
import json
import os
import re
import sys
from pathlib import Path

IMPORT_RE = re.compile(r"^import\s+['\"]([^'\"]+)['\"];?[ \t]*$", re.M)


def load(path, seen):
    if path in seen:
        return ""
    seen.add(path)
    text = path.read_text()
    deps = [load((path.parent / m.group(1)).resolve(), seen) for m in IMPORT_RE.finditer(text)]
    return "".join(deps) + IMPORT_RE.sub("", text)


log = os.environ.get("ESBUILD_STUB_LOG")
if log:
    with open(log, "a") as f:
        f.write(json.dumps(sys.argv[1:]) + "\n")
if os.environ.get("ESBUILD_STUB_FAIL"):
    sys.stderr.write("Could not resolve \"./missing.js\"\n")
    sys.exit(1)
sys.stdout.write(load(Path(sys.argv[1]).resolve(), set()))
'''


@pytest.fixture
def fake_esbuild(tmp_path, monkeypatch):
    """Put a stub ``esbuild`` on PATH; returns the file its argv lines go to."""
    if os.name == "nt":
        pytest.skip("needs an executable script on PATH")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    exe = bin_dir / "esbuild"
    exe.write_text(f"#!{sys.executable}\n{ESBUILD_STUB}")
    exe.chmod(0o755)
    log = tmp_path / "esbuild-args.jsonl"
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))
    monkeypatch.setenv("ESBUILD_STUB_LOG", str(log))
    return log
