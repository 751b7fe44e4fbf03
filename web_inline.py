#!/usr/bin/env python3
import argparse
import base64
import binascii
import io
import logging
import os
import re
import shutil
import string
import subprocess
import sys
import tempfile
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import (
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    TypeVar,
    Union,
)
from urllib.parse import unquote, urljoin, urlparse

import rcssmin
import requests
import rjsmin
import yaml
from bs4 import BeautifulSoup
from fontTools import subset as ft_subset
from fontTools.ttLib import TTFont
from PIL import Image
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

T = TypeVar("T")
R = TypeVar("R")

# -------------------- Config --------------------

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Accept": "*/*",
}

OVERRIDE_DIR_NAME = "dir"
SKIP_SEARCH_DIRS = {"node_modules", ".git"}

MIME_BY_EXT = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".json": "application/json",
    ".wasm": "application/wasm",
    ".glb": "model/gltf-binary",
    ".txt": "text/plain",
    ".js": "text/javascript",
    ".css": "text/css",
    ".html": "text/html",
}

# extensions rewritten by --optimize-only
OPT_EXTS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
    ".gif",
    ".mp3",
    ".m4a",
    ".wav",
    ".ogg",
    ".mp4",
    ".webm",
    ".woff",
    ".woff2",
    ".ttf",
    ".otf",
    ".glb",
}

JS_SOURCE_EXTS = {".js", ".mjs", ".cjs", ".jsx", ".ts", ".tsx"}

DEFAULT_FONT_SUBSET = string.ascii_lowercase + string.ascii_uppercase + string.digits

DATA_URI_PREFIX_RE = re.compile(r"^data:", re.IGNORECASE)
HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]+:", re.IGNORECASE)
DATA_URI_RE = re.compile(
    r"^data:([^;,]+)(?:;charset=[^;,]+)?(;base64)?,(.*)$",
    re.IGNORECASE | re.DOTALL,
)

# CSS
CSS_URL_RE = re.compile(
    r"url\(\s*(?:\"([^\"]*)\"|'([^']*)'|([^)\"']*))\s*\)",
    re.IGNORECASE,
)
CSS_IMPORT_RE = re.compile(
    r"@import\s+(?:url\(\s*(?:\"([^\"]*)\"|'([^']*)'|([^)\"']*))\s*\)"
    r"|\"([^\"]+)\"|'([^']+)')",
    re.IGNORECASE,
)
CSS_ESCAPE_RE = re.compile(r"\\([()'\"\s/\\])")
CSS_HREF_RE = re.compile(r"\.css(\?.*)?$", re.IGNORECASE)

# HTML
LINK_TAG_RE = re.compile(r"<link\b[^>]*>", re.IGNORECASE)
SCRIPT_SRC_RE = re.compile(
    r"<script([^>]*?)\s+src=[\"']([^\"']+)[\"']([^>]*)>(?:\s*</script>)?",
    re.IGNORECASE,
)
TYPE_MODULE_RE = re.compile(r"\stype=[\"']module[\"']", re.IGNORECASE)
MEDIA_ATTR_RES = [
    re.compile(rf"\s({attr})=[\"']([^\"']+)[\"']", re.IGNORECASE)
    for attr in ("src", "poster", "data-src", "background")
]
SRCSET_ATTR_RE = re.compile(r"\s(srcset)=[\"']([^\"']+)[\"']", re.IGNORECASE)
STYLE_BLOCK_RE = re.compile(r"<style[^>]*>([\s\S]*?)</style>", re.IGNORECASE)
STYLE_ATTR_RE = re.compile(r"\sstyle=([\"'])(.*?)\1", re.IGNORECASE | re.DOTALL)
DATA_URI_SCAN_RE = re.compile(
    r"(data:[^\"'()\s<>]+?(?:;charset=[^;,]+)?;base64,[A-Za-z0-9+/=%_-]+)",
    re.IGNORECASE,
)
HTML_COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")
INTER_TAG_WS_RE = re.compile(r">\s+<")
RAW_TEXT_BLOCK_RE = re.compile(
    r"<(script|style|pre|textarea)\b[\s\S]*?</\1\s*>", re.IGNORECASE
)
RAW_PLACEHOLDER_RE = re.compile(r"<\x00(\d+)\x00>")

# JS string literals holding an asset path or an inline payload
JS_ASSET_LITERAL_RE = re.compile(
    r"([\"'`])("
    r"[^\"'`]*?\.(?:png|jpe?g|gif|svg|webp|mp4|webm|mp3|m4a|wav|ogg|json|txt|wasm|glb|woff2?|ttf|otf)"
    r"(?:\?[^\"'`#]*)?(?:#[^\"'`]*)?"
    r"|data:[^\"'`]+?"
    r")\1",
    re.IGNORECASE,
)

URI_DATA = "data"
URI_REMOTE = "remote"
URI_LOCAL = "local"
URI_SKIP = "skip"


# -------------------- Settings --------------------


@dataclass
class Settings:
    # image
    jpeg_quality: int = 50
    webp_quality: int = 50
    png_compress_level: int = 9
    png_palette: bool = True
    png_colors: int = 256
    gif_lossy: int = 180
    gif_colors: int = 48

    # video
    video_codec: str = "libx264"
    video_crf: int = 26
    video_preset: str = "slow"
    video_tune: Optional[str] = None  # film | animation | grain
    video_max_width: Optional[int] = 540
    video_fps: Optional[float] = None
    video_two_pass: bool = False
    video_target_mbps: Optional[float] = None
    video_max_rate_factor: float = 2.0
    video_audio_kbps: int = 160
    video_faststart: bool = True

    # audio / font / mesh
    audio_mp3_kbps: int = 128
    font_subset: str = DEFAULT_FONT_SUBSET
    glb_simplify: float = 1.0

    # toggles
    fetch_externals: bool = False
    minify_html: bool = False
    minify_css: bool = False
    minify_js: bool = False
    bundle_js: bool = True

    # general
    workers: int = 8
    timeout: float = 15.0
    max_bytes: int = 50_000_000
    override_dir_name: str = OVERRIDE_DIR_NAME
    output_dir: str = "dist"
    search_root: str = "."
    extra_headers: List[str] = field(default_factory=list)  # "Name: value"

    # optimize-only
    optimize_only: bool = False
    assets_dir: Optional[str] = None


# -------------------- Errors --------------------


class InlineError(Exception):
    pass


class EntryNotFoundError(InlineError):
    pass


class PathTraversalError(InlineError):
    pass


class BundleError(InlineError):
    pass


# -------------------- Utils --------------------


def mime_for_path(path: Union[str, Path]) -> str:
    ext = os.path.splitext(str(path))[1].lower()
    return MIME_BY_EXT.get(ext, "application/octet-stream")


def ext_for_mime(mime: str) -> Optional[str]:
    for ext, m in MIME_BY_EXT.items():
        if m == mime:
            return ext
    return None


def decode_local_path(u: str) -> str:
    clean = u.split("#")[0].split("?")[0]
    try:
        return unquote(clean, errors="strict")
    except UnicodeDecodeError:
        return clean


def classify_uri(u: str) -> Tuple[str, str]:
    s = (u or "").strip()
    if not s:
        return URI_SKIP, u
    if DATA_URI_PREFIX_RE.match(s):
        return URI_DATA, s
    if HTTP_RE.match(s):
        return URI_REMOTE, s
    if s.startswith("//"):
        return URI_REMOTE, "https:" + s
    if s.startswith(("#", "?")):
        return URI_SKIP, u
    # a single letter is a windows drive, not a scheme
    if SCHEME_RE.match(s):
        return URI_SKIP, u
    decoded = decode_local_path(s)
    if not decoded:
        return URI_SKIP, u
    return URI_LOCAL, decoded


def is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def map_concurrently(
    fn: Callable[[T], R], items: Sequence[T], workers: int
) -> List[R]:
    if not items:
        return []
    if len(items) == 1 or workers <= 1:
        return [fn(x) for x in items]
    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as pool:
        futures = [pool.submit(fn, x) for x in items]
        return [f.result() for f in futures]


def replace_all(
    text: str,
    pattern: "re.Pattern[str]",
    transform: Callable[["re.Match[str]"], str],
    workers: int = 8,
) -> str:
    matches = list(pattern.finditer(text))
    if not matches:
        return text
    replacements = map_concurrently(transform, matches, workers)
    parts: List[str] = []
    last = 0
    for m, repl in zip(matches, replacements):
        parts.append(text[last : m.start()])
        parts.append(repl)
        last = m.end()
    parts.append(text[last:])
    return "".join(parts)


def find_file_recursive(
    target: str, start_dir: Path, skip_dirs: Optional[set] = None
) -> Optional[Path]:
    skip = SKIP_SEARCH_DIRS | (skip_dirs or set())
    try:
        entries = sorted(start_dir.iterdir(), key=lambda p: p.name)
    except OSError as e:
        logging.debug("cannot list %s: %s", start_dir, e)
        return None
    for entry in entries:
        if entry.is_file() and entry.name == target:
            return entry
    for entry in entries:
        if entry.is_dir() and entry.name not in skip:
            found = find_file_recursive(target, entry, skip_dirs)
            if found is not None:
                return found
    return None


@contextmanager
def scratch_dir(prefix: str = "web_inline_") -> Iterator[Path]:
    d = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield d
    finally:
        shutil.rmtree(d, ignore_errors=True)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(data)
    os.replace(tmp, path)


def escape_closing_tag(text: str, tag: str) -> str:
    return re.sub(rf"</({tag})", r"<\\/\1", text, flags=re.IGNORECASE)


# -------------------- HTML utils --------------------


def bs4_parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except Exception:
        return BeautifulSoup(html, "html.parser")


def tag_attrs(markup: str, name: str) -> Dict[str, str]:
    tag = bs4_parse(markup).find(name)
    if tag is None:
        return {}
    out: Dict[str, str] = {}
    for k, v in tag.attrs.items():
        out[k.lower()] = " ".join(v) if isinstance(v, list) else str(v)
    return out


def parse_srcset(v: str) -> List[Tuple[str, str]]:
    """Split a srcset into ``(url, descriptor)`` candidates.

    URLs run up to the next whitespace, so commas inside ``data:`` payloads
    are kept; a trailing comma on the URL ends the candidate.
    """
    out: List[Tuple[str, str]] = []
    i, n = 0, len(v)
    while i < n:
        while i < n and (v[i].isspace() or v[i] == ","):
            i += 1
        if i >= n:
            break
        j = i
        while j < n and not v[j].isspace():
            j += 1
        url = v[i:j]
        i = j
        desc = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            k = v.find(",", i)
            if k == -1:
                k = n
            desc = v[i:k].strip()
            i = k + 1
        if url:
            out.append((url, desc))
    return out


# -------------------- Run state --------------------


class PayloadCache:
    def __init__(self) -> None:
        self._m: Dict[str, str] = {}
        self._pending: Dict[str, Lock] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._m.get(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._m

    def __len__(self) -> int:
        with self._lock:
            return len(self._m)

    def get_or_compute(
        self, key: str, compute: Callable[[], Optional[str]]
    ) -> Optional[str]:
        with self._lock:
            if key in self._m:
                return self._m[key]
            key_lock = self._pending.setdefault(key, Lock())
        with key_lock:
            with self._lock:
                if key in self._m:
                    return self._m[key]
            value = compute()
            with self._lock:
                if value is not None:
                    self._m[key] = value
                self._pending.pop(key, None)
            return value


class RunStats:
    def __init__(self) -> None:
        self.original_bytes = 0
        self.final_bytes = 0
        self._lock = Lock()

    def record(self, label: str, original: int, final: int) -> None:
        with self._lock:
            self.original_bytes += original
            self.final_bytes += final
        pct = (1 - final / original) * 100 if original else 0.0
        logging.info("%s: %d -> %d bytes (%.1f%% saved)", label, original, final, pct)

    def adjust(self, label: str, before: int, after: int) -> None:
        # a payload already counted this run only moves the final total
        with self._lock:
            self.final_bytes += after - before
        if after != before:
            logging.debug("%s: re-optimized %d -> %d bytes", label, before, after)

    @property
    def saved_bytes(self) -> int:
        return self.original_bytes - self.final_bytes


class RunContext:
    def __init__(
        self,
        settings: Settings,
        project_root: Optional[Path] = None,
        optimizer: Optional["MediaOptimizer"] = None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.project_root = project_root.resolve() if project_root else None
        self.optimizer = optimizer or MediaOptimizer(settings)
        self.file_cache = PayloadCache()
        self.data_uri_cache = PayloadCache()
        self.remote_cache = PayloadCache()
        self.stats = RunStats()
        self._produced: Set[str] = set()
        self._produced_lock = Lock()
        self._session = session
        self._session_lock = Lock()

    @property
    def override_root(self) -> Optional[Path]:
        if self.project_root is None:
            return None
        return self.project_root / self.settings.override_dir_name

    def mark_produced(self, payload: str) -> str:
        with self._produced_lock:
            self._produced.add(payload)
        return payload

    def was_produced(self, payload: str) -> bool:
        with self._produced_lock:
            return payload in self._produced

    @property
    def session(self) -> requests.Session:
        with self._session_lock:
            if self._session is None:
                self._session = build_session(self.settings)
            return self._session


# -------------------- HTTP --------------------


def parse_headers(lines: Sequence[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for line in lines:
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            logging.warning("ignoring header without a name: %r", line)
            continue
        headers[name.strip()] = value.strip()
    return headers


def build_session(settings: Settings) -> requests.Session:
    retry = Retry(
        total=3,
        connect=3,
        read=2,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_maxsize=max(10, settings.workers))
    session = requests.Session()
    for prefix in ("http://", "https://"):
        session.mount(prefix, adapter)
    session.headers.update({**DEFAULT_HEADERS, **parse_headers(settings.extra_headers)})
    return session


def fetch_bytes(ctx: RunContext, url: str) -> Optional[Tuple[bytes, Optional[str]]]:
    try:
        r = ctx.session.get(url, timeout=ctx.settings.timeout)
    except requests.RequestException as e:
        logging.warning("error fetching %s: %s", url, e)
        return None
    if r.status_code >= 400:
        logging.warning("failed %s -> HTTP %s", url, r.status_code)
        return None
    body = r.content
    if len(body) > ctx.settings.max_bytes:
        logging.warning("skip large file %s (%d bytes)", url, len(body))
        return None
    return body, r.headers.get("Content-Type")


def fetch_text(ctx: RunContext, url: str) -> Optional[str]:
    got = fetch_bytes(ctx, url)
    if got is None:
        return None
    body, _ = got
    return body.decode("utf-8", errors="replace")


# -------------------- Media optimizers --------------------


@dataclass
class OptimizeResult:
    data: bytes
    changed: bool = False
    available: bool = True
    mime: Optional[str] = None  # set when the codec changed the container
    error: Optional[str] = None


def run_tool(args: List[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    return subprocess.run(
        args,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        check=True,
        timeout=timeout,
    )


class MediaOptimizer:
    def __init__(self, settings: Settings):
        self.s = settings

    def optimize(self, data: bytes, mime: str) -> OptimizeResult:
        mime = (mime or "").lower()
        try:
            if mime == "image/gif":
                return self.optimize_gif(data)
            if mime.startswith("image/"):
                return self.optimize_image(data, mime)
            if mime.startswith("video/"):
                return self.optimize_video(data, mime)
            if mime.startswith("audio/"):
                return self.optimize_audio(data, mime)
            if mime == "model/gltf-binary":
                return self.optimize_glb(data)
            if mime.startswith("font/"):
                return self.optimize_font(data)
        except Exception as e:
            logging.warning("optimizer failed for %s: %s", mime, e)
            return OptimizeResult(data, error=str(e))
        return OptimizeResult(data)

    # ---- raster images ----

    def optimize_image(self, data: bytes, mime: str) -> OptimizeResult:
        if mime not in ("image/jpeg", "image/png", "image/webp"):
            return OptimizeResult(data)
        img = Image.open(io.BytesIO(data))
        if getattr(img, "is_animated", False):
            return OptimizeResult(data)
        buf = io.BytesIO()
        if mime == "image/jpeg":
            if img.mode not in ("RGB", "L", "CMYK"):
                img = img.convert("RGB")
            img.save(buf, format="JPEG", quality=self.s.jpeg_quality, optimize=True)
        elif mime == "image/webp":
            img.save(buf, format="WEBP", quality=self.s.webp_quality, method=4)
        else:
            if self.s.png_palette and img.mode != "P":
                if img.mode not in ("RGB", "RGBA"):
                    img = img.convert("RGBA")
                method = (
                    Image.Quantize.FASTOCTREE
                    if img.mode == "RGBA"
                    else Image.Quantize.MEDIANCUT
                )
                img = img.quantize(colors=self.s.png_colors, method=method)
            img.save(
                buf,
                format="PNG",
                optimize=True,
                compress_level=self.s.png_compress_level,
            )
        return OptimizeResult(buf.getvalue(), changed=True)

    def optimize_gif(self, data: bytes) -> OptimizeResult:
        if shutil.which("gifsicle") is None:
            return OptimizeResult(data, available=False)
        with scratch_dir() as d:
            src, dst = d / "in.gif", d / "out.gif"
            src.write_bytes(data)
            args = ["gifsicle", "-O3"]
            if self.s.gif_lossy and self.s.gif_lossy > 0:
                args.append(f"--lossy={self.s.gif_lossy}")
            if self.s.gif_colors and 0 < self.s.gif_colors <= 256:
                args += ["--colors", str(self.s.gif_colors)]
            args += [str(src), "-o", str(dst)]
            try:
                run_tool(args)
            except subprocess.CalledProcessError as e:
                msg = e.stderr.decode("utf-8", errors="ignore").strip()
                logging.warning("gifsicle failed: %s", msg)
                return OptimizeResult(data, error=msg)
            return OptimizeResult(dst.read_bytes(), changed=True)

    # ---- video / audio ----

    def probe_width(self, path: Path) -> int:
        if shutil.which("ffprobe") is None:
            return 0
        try:
            r = run_tool(
                [
                    "ffprobe",
                    "-v",
                    "error",
                    "-select_streams",
                    "v:0",
                    "-show_entries",
                    "stream=width",
                    "-of",
                    "csv=p=0",
                    str(path),
                ]
            )
            return int(r.stdout.decode("utf-8", errors="ignore").strip() or 0)
        except (subprocess.CalledProcessError, ValueError):
            return 0

    def video_args(self, width: int) -> List[str]:
        s = self.s
        if s.video_max_width and width and width > s.video_max_width:
            scale = f"scale={s.video_max_width}:-2"
        else:
            scale = "scale=trunc(iw/2)*2:trunc(ih/2)*2"
        args = ["-pix_fmt", "yuv420p", "-c:v", s.video_codec, "-preset", s.video_preset]
        args += ["-crf", str(s.video_crf), "-profile:v", "high", "-level", "4.1"]
        args += ["-vf", scale]
        if s.video_tune:
            args += ["-tune", s.video_tune]
        if s.video_fps:
            args += ["-r", str(s.video_fps)]
        if s.video_faststart:
            args += ["-movflags", "+faststart"]
        if s.video_target_mbps:
            vb = f"{s.video_target_mbps}M"
            peak = s.video_target_mbps * s.video_max_rate_factor
            args += ["-b:v", vb, "-minrate", vb]
            args += ["-maxrate", f"{peak:.2f}M", "-bufsize", f"{peak * 2:.2f}M"]
        return args

    def optimize_video(self, data: bytes, mime: str) -> OptimizeResult:
        if shutil.which("ffmpeg") is None:
            return OptimizeResult(data, available=False)
        s = self.s
        with scratch_dir() as d:
            src = d / ("in" + (ext_for_mime(mime) or ".bin"))
            dst = d / "out.mp4"
            src.write_bytes(data)
            base = self.video_args(self.probe_width(src))
            audio = ["-c:a", "aac", "-b:a", f"{s.video_audio_kbps}k"]
            try:
                if s.video_two_pass and s.video_target_mbps:
                    passlog = str(d / "2pass")
                    run_tool(
                        ["ffmpeg", "-y", "-i", str(src)]
                        + base
                        + ["-an", "-pass", "1", "-passlogfile", passlog]
                        + ["-f", "mp4", os.devnull]
                    )
                    run_tool(
                        ["ffmpeg", "-y", "-i", str(src)]
                        + base
                        + audio
                        + ["-pass", "2", "-passlogfile", passlog, str(dst)]
                    )
                else:
                    run_tool(["ffmpeg", "-y", "-i", str(src)] + base + audio + [str(dst)])
            except subprocess.CalledProcessError as e:
                msg = e.stderr.decode("utf-8", errors="ignore").strip()[-500:]
                logging.warning("ffmpeg video failed: %s", msg)
                return OptimizeResult(data, error=msg)
            return OptimizeResult(dst.read_bytes(), changed=True, mime="video/mp4")

    def optimize_audio(self, data: bytes, mime: str) -> OptimizeResult:
        if shutil.which("ffmpeg") is None:
            return OptimizeResult(data, available=False)
        with scratch_dir() as d:
            src = d / ("in" + (ext_for_mime(mime) or ".bin"))
            dst = d / "out.mp3"
            src.write_bytes(data)
            cmd = ["ffmpeg", "-y", "-i", str(src), "-vn", "-c:a", "libmp3lame"]
            cmd += ["-b:a", f"{self.s.audio_mp3_kbps}k", str(dst)]
            try:
                run_tool(cmd)
            except subprocess.CalledProcessError as e:
                msg = e.stderr.decode("utf-8", errors="ignore").strip()[-500:]
                logging.warning("ffmpeg audio failed: %s", msg)
                return OptimizeResult(data, error=msg)
            return OptimizeResult(dst.read_bytes(), changed=True, mime="audio/mpeg")

    # ---- meshes / fonts ----

    def optimize_glb(self, data: bytes) -> OptimizeResult:
        if shutil.which("gltfpack") is None:
            return OptimizeResult(data, available=False)
        with scratch_dir() as d:
            src, dst = d / "in.glb", d / "out.glb"
            src.write_bytes(data)
            # -cc needs the meshopt decoder at runtime; -kn/-km keep names and materials
            args = ["gltfpack", "-i", str(src), "-o", str(dst), "-cc", "-kn", "-km"]
            args += ["-si", str(self.s.glb_simplify), "-noq"]
            try:
                try:
                    run_tool(args + ["-tc"])
                except subprocess.CalledProcessError as e:
                    msg = (e.stderr or b"").decode("utf-8", errors="ignore")
                    if (
                        "BasisU support" in msg
                        or "texture compression is not available" in msg
                        or "built without BasisU" in msg
                    ):
                        run_tool(args)
                    else:
                        raise
            except subprocess.CalledProcessError as e:
                msg = (e.stderr or b"").decode("utf-8", errors="ignore").strip()
                logging.warning("gltfpack failed: %s", msg)
                return OptimizeResult(data, error=msg)
            if not dst.exists():
                logging.warning("gltfpack finished but output file not found")
                return OptimizeResult(data, error="no output")
            return OptimizeResult(dst.read_bytes(), changed=True)

    def optimize_font(self, data: bytes) -> OptimizeResult:
        font = TTFont(io.BytesIO(data))
        flavor = font.flavor
        options = ft_subset.Options()
        options.flavor = flavor
        subsetter = ft_subset.Subsetter(options=options)
        subsetter.populate(text=self.s.font_subset)
        subsetter.subset(font)
        buf = io.BytesIO()
        font.flavor = flavor
        font.save(buf)
        return OptimizeResult(buf.getvalue(), changed=True)


# -------------------- Minifiers / bundler --------------------


def maybe_minify_css(ctx: RunContext, css: str) -> str:
    if not ctx.settings.minify_css:
        return css
    try:
        return rcssmin.cssmin(css)
    except Exception as e:
        logging.warning("css minify failed: %s", e)
        return css


def maybe_minify_js(ctx: RunContext, js: str) -> str:
    if not ctx.settings.minify_js:
        return js
    try:
        return rjsmin.jsmin(js)
    except Exception as e:
        logging.warning("js minify failed: %s", e)
        return js


def maybe_minify_html(ctx: RunContext, html: str) -> str:
    if not ctx.settings.minify_html:
        return html

    blocks: List[str] = []

    def stash(m: "re.Match[str]") -> str:
        blocks.append(m.group(0))
        return f"<\x00{len(blocks) - 1}\x00>"

    masked = RAW_TEXT_BLOCK_RE.sub(stash, html)
    masked = HTML_COMMENT_RE.sub("", masked)
    masked = INTER_TAG_WS_RE.sub("><", masked)
    return RAW_PLACEHOLDER_RE.sub(lambda m: blocks[int(m.group(1))], masked)


def esbuild_path() -> str:
    exe = shutil.which("esbuild")
    if exe is None:
        raise BundleError("esbuild not found on PATH")
    return exe


def bundle_js(ctx: RunContext, entry: Path, fmt: str = "iife") -> str:
    args = [
        esbuild_path(),
        str(entry),
        "--bundle",
        f"--format={fmt}",
        "--target=es2017",
        "--log-level=error",
    ]
    if ctx.settings.minify_js:
        args.append("--minify")
    try:
        r = run_tool(args, timeout=120)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        stderr = getattr(e, "stderr", None) or b""
        msg = stderr.decode("utf-8", errors="ignore").strip()
        raise BundleError(msg or str(e)) from e
    return r.stdout.decode("utf-8")


# -------------------- Encoder --------------------


def to_data_uri(mime: str, data: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def from_data_uri(data_uri: str) -> Optional[Tuple[str, bytes]]:
    m = DATA_URI_RE.match(data_uri)
    if not m:
        return None
    mime = m.group(1).lower()
    payload = unquote(m.group(3))
    try:
        if m.group(2):
            return mime, base64.b64decode(payload)
        return mime, payload.encode("utf-8")
    except (binascii.Error, ValueError):
        return None


def optimize_bytes(ctx: RunContext, data: bytes, mime: str) -> Tuple[bytes, str]:
    try:
        res = ctx.optimizer.optimize(data, mime)
    except Exception as e:
        logging.warning("optimizer raised for %s: %s", mime, e)
        return data, mime
    if not res.available:
        logging.debug("no optimizer available for %s", mime)
    if not res.changed or len(res.data) > len(data) or not res.data:
        return data, mime
    return res.data, res.mime or mime


def encode_file(ctx: RunContext, path: Path) -> Optional[str]:
    path = Path(os.path.abspath(path))
    key = str(path)
    hit = ctx.file_cache.get(key)
    if hit is not None:
        return hit
    if not path.is_file():
        return None

    def compute() -> Optional[str]:
        try:
            original = path.read_bytes()
        except OSError as e:
            logging.warning("cannot read %s: %s", path, e)
            return None
        mime = mime_for_path(path)
        data, out_mime = optimize_bytes(ctx, original, mime)
        ctx.stats.record(path.name, len(original), len(data))
        return ctx.mark_produced(to_data_uri(out_mime, data))

    return ctx.file_cache.get_or_compute(key, compute)


def reencode_data_uri(ctx: RunContext, data_uri: str) -> str:
    def compute() -> str:
        parsed = from_data_uri(data_uri)
        if parsed is None:
            logging.warning("could not decode data URI (%s...)", data_uri[:40])
            return data_uri
        mime, original = parsed
        data, out_mime = optimize_bytes(ctx, original, mime)
        if ctx.was_produced(data_uri):
            ctx.stats.adjust(f"data:{mime}", len(original), len(data))
        else:
            ctx.stats.record(f"data:{mime}", len(original), len(data))
        return ctx.mark_produced(to_data_uri(out_mime, data))

    return ctx.data_uri_cache.get_or_compute(data_uri, compute) or data_uri


def fetch_and_encode(ctx: RunContext, url: str) -> Optional[str]:
    if not ctx.settings.fetch_externals:
        return None

    def compute() -> Optional[str]:
        got = fetch_bytes(ctx, url)
        if got is None:
            return None
        body, content_type = got
        mime = (content_type or "").split(";")[0].strip().lower()
        if not mime:
            mime = mime_for_path(urlparse(url).path)
        data, out_mime = optimize_bytes(ctx, body, mime)
        ctx.stats.record(url, len(body), len(data))
        return ctx.mark_produced(to_data_uri(out_mime, data))

    return ctx.remote_cache.get_or_compute(url, compute)


# -------------------- Overrides --------------------


def checked_override(candidate: Path, override_root: Path) -> Optional[Path]:
    if not candidate.is_file():
        return None
    if not is_within(candidate, override_root):
        raise PathTraversalError(
            f"override {candidate} resolves outside {override_root}"
        )
    return candidate


def resolve_override(
    ref: str,
    base_dir: Path,
    project_root: Optional[Path],
    dir_name: str = OVERRIDE_DIR_NAME,
) -> Optional[Path]:
    """Substitute file for a decoded local reference, or None.

    Looks under ``<project_root>/<dir_name>`` first by the reference's path
    relative to the project root, then by its basename.
    """
    if project_root is None:
        return None
    override_root = project_root / dir_name
    full = resolve_local(ref, base_dir, project_root)
    rel = os.path.relpath(full, project_root)
    if not rel.startswith("..") and not os.path.isabs(rel):
        rel_safe = rel.replace(os.sep, "/")
        hit = checked_override(override_root / rel_safe, override_root)
        if hit is not None:
            return hit
    bname = os.path.basename(ref)
    if not bname or bname in (".", ".."):
        return None
    return checked_override(override_root / bname, override_root)


def resolve_remote_override(
    url: str, project_root: Optional[Path], dir_name: str = OVERRIDE_DIR_NAME
) -> Optional[Path]:
    if project_root is None:
        return None
    bname = os.path.basename(urlparse(url).path)
    if not bname or bname in (".", ".."):
        return None
    override_root = project_root / dir_name
    return checked_override(override_root / bname, override_root)


def resolve_local(ref: str, base_dir: Path, project_root: Optional[Path]) -> Path:
    if ref.startswith("/") and project_root is not None:
        return Path(os.path.normpath(project_root / ref.lstrip("/")))
    return Path(os.path.normpath(Path(base_dir) / ref))


# -------------------- Resolver --------------------


def process_uri(ctx: RunContext, uri: str, base_dir: Path) -> str:
    kind, norm = classify_uri(uri)
    if kind == URI_SKIP:
        return uri
    if kind == URI_DATA:
        return reencode_data_uri(ctx, norm)

    dir_name = ctx.settings.override_dir_name
    if kind == URI_REMOTE:
        override = resolve_remote_override(norm, ctx.project_root, dir_name)
        if override is not None:
            logging.info("override used for %s -> %s/%s", uri, dir_name, override.name)
            return encode_file(ctx, override) or uri
        return fetch_and_encode(ctx, norm) or uri

    override = resolve_override(norm, base_dir, ctx.project_root, dir_name)
    if override is not None:
        rel = override.relative_to(ctx.override_root).as_posix()
        logging.info("override used for %s -> %s/%s", norm, dir_name, rel)
        return encode_file(ctx, override) or uri

    full = resolve_local(norm, base_dir, ctx.project_root)
    encoded = encode_file(ctx, full)
    if encoded is None:
        logging.warning("not found: %s (from: %s)", full, uri)
        return uri
    return encoded


# -------------------- CSS --------------------


def unescape_css_path(s: str) -> str:
    return CSS_ESCAPE_RE.sub(r"\1", s)


def process_css_content(
    ctx: RunContext, css: str, base_dir: Path, base_url: Optional[str] = None
) -> str:
    def resolve(raw: str) -> str:
        if base_url and classify_uri(raw)[0] == URI_LOCAL:
            raw = urljoin(base_url, raw)
        return process_uri(ctx, raw, base_dir)

    def repl_url(m: "re.Match[str]") -> str:
        dq, sq, bare = m.group(1), m.group(2), m.group(3)
        raw = next((g for g in (dq, sq, bare) if g is not None), "")
        raw = unescape_css_path(raw.strip())
        if not raw:
            return m.group(0)
        new = resolve(raw)
        if dq is not None:
            return f'url("{new}")'
        if sq is not None:
            return f"url('{new}')"
        return f"url({new})"

    def repl_import(m: "re.Match[str]") -> str:
        u1, u2, u3, q1, q2 = m.groups()
        raw = next((g for g in (u1, u2, u3, q1, q2) if g is not None), "")
        raw = unescape_css_path(raw.strip())
        if not raw:
            return m.group(0)
        new = resolve(raw)
        if u1 is not None:
            return f'@import url("{new}")'
        if u2 is not None:
            return f"@import url('{new}')"
        if u3 is not None:
            return f"@import url({new})"
        if q1 is not None:
            return f'@import "{new}"'
        return f"@import '{new}'"

    w = ctx.settings.workers
    css = replace_all(css, CSS_URL_RE, repl_url, w)
    css = replace_all(css, CSS_IMPORT_RE, repl_import, w)
    return css


def inline_css_links(ctx: RunContext, html: str, base_dir: Path) -> str:
    def repl(m: "re.Match[str]") -> str:
        attrs = tag_attrs(m.group(0), "link")
        rels = set(attrs.get("rel", "").lower().split())
        href = attrs.get("href", "")
        if "stylesheet" not in rels or not href or not CSS_HREF_RE.search(href):
            return m.group(0)

        kind, norm = classify_uri(href)
        if kind == URI_REMOTE:
            if not ctx.settings.fetch_externals:
                return m.group(0)
            css = fetch_text(ctx, norm)
            if css is None:
                return m.group(0)
            css = process_css_content(ctx, css, base_dir, base_url=norm)
            css = maybe_minify_css(ctx, css)
            return f"<style>{escape_closing_tag(css, 'style')}</style>"
        if kind != URI_LOCAL:
            return m.group(0)

        full = resolve_local(norm, base_dir, ctx.project_root)
        if not full.is_file():
            logging.warning("stylesheet not found, dropping link: %s", full)
            return ""
        css = full.read_text(encoding="utf-8", errors="replace")
        css = process_css_content(ctx, css, full.parent)
        css = maybe_minify_css(ctx, css)
        return f"<style>{escape_closing_tag(css, 'style')}</style>"

    return replace_all(html, LINK_TAG_RE, repl, ctx.settings.workers)


# -------------------- JS --------------------


def process_js_content(ctx: RunContext, js: str, base_dir: Path) -> str:
    def repl(m: "re.Match[str]") -> str:
        q, ref = m.group(1), m.group(2)
        return f"{q}{process_uri(ctx, ref, base_dir)}{q}"

    return replace_all(js, JS_ASSET_LITERAL_RE, repl, ctx.settings.workers)


def stage_js_tree(ctx: RunContext, root: Path, dest: Path) -> None:
    # each module's asset strings resolve against that module's own folder
    s = ctx.settings
    skip = SKIP_SEARCH_DIRS | {s.override_dir_name, Path(s.output_dir).name}
    for src in walk_files(root, skip):
        suffix = src.suffix.lower()
        if suffix in OPT_EXTS:
            continue
        dst = dest / src.relative_to(root)
        dst.parent.mkdir(parents=True, exist_ok=True)
        if suffix in JS_SOURCE_EXTS:
            js = src.read_text(encoding="utf-8", errors="replace")
            dst.write_text(process_js_content(ctx, js, src.parent), encoding="utf-8")
        else:
            shutil.copy2(src, dst)
    modules = root / "node_modules"
    if modules.is_dir():
        (dest / "node_modules").symlink_to(modules, target_is_directory=True)


def bundle_with_assets(ctx: RunContext, entry: Path, fmt: str) -> str:
    root = ctx.project_root
    if root is None or not is_within(entry, root):
        return process_js_content(ctx, bundle_js(ctx, entry, fmt), entry.parent)
    esbuild_path()  # fail before copying the tree
    with scratch_dir("web_inline_js_") as staged:
        try:
            stage_js_tree(ctx, root, staged)
        except OSError as e:
            raise BundleError(f"cannot stage scripts in {staged}: {e}") from e
        return bundle_js(ctx, staged / entry.resolve().relative_to(root), fmt)


def script_tag(attrs: str, body: str) -> str:
    return f"<script{attrs}>{escape_closing_tag(body, 'script')}</script>"


def inline_js_scripts(ctx: RunContext, html: str, base_dir: Path) -> str:
    def repl(m: "re.Match[str]") -> str:
        pre, src, post = m.group(1), m.group(2), m.group(3)
        untouched = f'<script{pre} src="{src}"{post}></script>'
        kind, norm = classify_uri(src)

        if kind == URI_REMOTE:
            if not ctx.settings.fetch_externals:
                return untouched
            js = fetch_text(ctx, norm)
            if js is None:
                return untouched
            js = process_js_content(ctx, js, base_dir)
            return script_tag(pre + post, maybe_minify_js(ctx, js))
        if kind != URI_LOCAL:
            return untouched

        file = resolve_local(norm, base_dir, ctx.project_root)
        if not file.is_file():
            logging.warning("script not found: %s", file)
            return untouched

        is_module = tag_attrs(m.group(0), "script").get("type", "").lower() == "module"
        if ctx.settings.bundle_js:
            try:
                bundled = bundle_with_assets(ctx, file, "esm" if is_module else "iife")
                attrs = TYPE_MODULE_RE.sub("", pre) + TYPE_MODULE_RE.sub("", post)
                if is_module:
                    attrs += ' type="module"'
                return script_tag(attrs, bundled)
            except BundleError as e:
                logging.warning("bundling failed for %s, inlining as-is: %s", file, e)

        js = file.read_text(encoding="utf-8", errors="replace")
        js = process_js_content(ctx, js, file.parent)
        return script_tag(pre + post, maybe_minify_js(ctx, js))

    return replace_all(html, SCRIPT_SRC_RE, repl, ctx.settings.workers)


# -------------------- HTML --------------------


def inline_html_media_attrs(ctx: RunContext, html: str, base_dir: Path) -> str:
    def repl(m: "re.Match[str]") -> str:
        attr, val = m.group(1), m.group(2)
        return f' {attr}="{process_uri(ctx, val, base_dir)}"'

    for pattern in MEDIA_ATTR_RES:
        html = replace_all(html, pattern, repl, ctx.settings.workers)
    return html


def inline_srcset(ctx: RunContext, html: str, base_dir: Path) -> str:
    def one(item: Tuple[str, str]) -> str:
        url, desc = item
        new = process_uri(ctx, url, base_dir)
        return f"{new} {desc}" if desc else new

    def repl(m: "re.Match[str]") -> str:
        attr, value = m.group(1), m.group(2)
        parts = map_concurrently(one, parse_srcset(value), ctx.settings.workers)
        return f' {attr}="{", ".join(parts)}"'

    return replace_all(html, SRCSET_ATTR_RE, repl, ctx.settings.workers)


def inline_styles_everywhere(ctx: RunContext, html: str, base_dir: Path) -> str:
    def repl_block(m: "re.Match[str]") -> str:
        css = process_css_content(ctx, m.group(1), base_dir)
        css = maybe_minify_css(ctx, css)
        whole, off = m.group(0), m.start(1) - m.start(0)
        return whole[:off] + css + whole[off + len(m.group(1)) :]

    def repl_attr(m: "re.Match[str]") -> str:
        q, css = m.group(1), m.group(2)
        new = maybe_minify_css(ctx, process_css_content(ctx, css, base_dir))
        return f" style={q}{new}{q}"

    html = replace_all(html, STYLE_BLOCK_RE, repl_block, ctx.settings.workers)
    html = replace_all(html, STYLE_ATTR_RE, repl_attr, ctx.settings.workers)
    return html


def reencode_all_data_uris(ctx: RunContext, html: str) -> str:
    return replace_all(
        html,
        DATA_URI_SCAN_RE,
        lambda m: reencode_data_uri(ctx, m.group(0)) or m.group(0),
        ctx.settings.workers,
    )


# -------------------- Pipeline --------------------


def locate_entry(settings: Settings, input_name: str) -> Path:
    direct = Path(input_name)
    if direct.is_file():
        return direct.resolve()
    start = Path(settings.search_root).resolve()
    skip = {settings.override_dir_name, Path(settings.output_dir).name}
    found = find_file_recursive(direct.name, start, skip)
    if found is None:
        raise EntryNotFoundError(
            f'file "{input_name}" not found in any subfolder of {start}'
        )
    return found.resolve()


def inline_document(ctx: RunContext, html: str, base_dir: Path) -> str:
    html = inline_css_links(ctx, html, base_dir)
    html = inline_js_scripts(ctx, html, base_dir)
    html = inline_html_media_attrs(ctx, html, base_dir)
    html = inline_srcset(ctx, html, base_dir)
    html = inline_styles_everywhere(ctx, html, base_dir)
    html = reencode_all_data_uris(ctx, html)
    html = maybe_minify_html(ctx, html)
    return html


def walk_files(root: Path, skip_dirs: Set[str]) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in skip_dirs)
        for name in sorted(filenames):
            yield Path(dirpath) / name


def optimize_assets_in_place(ctx: RunContext, assets_dir: Optional[Path]) -> None:
    if assets_dir is None:
        raise InlineError("missing --assets-dir, e.g. --assets-dir=assets")
    if not assets_dir.is_dir():
        raise InlineError(f"assets dir not found: {assets_dir}")
    for path in walk_files(assets_dir, {ctx.settings.override_dir_name}):
        if path.suffix.lower() not in OPT_EXTS:
            continue
        original = path.read_bytes()
        mime = mime_for_path(path)
        data, out_mime = optimize_bytes(ctx, original, mime)
        label = path.relative_to(assets_dir).as_posix()
        # the file keeps its name, so a container change cannot be written back
        if out_mime == mime and len(data) < len(original):
            atomic_write_bytes(path, data)
            ctx.stats.record(label, len(original), len(data))
        else:
            ctx.stats.record(label, len(original), len(original))
    logging.info("assets optimized in place: %s", assets_dir)


def inline_html(
    settings: Settings,
    input_name: str = "index.html",
    optimizer: Optional[MediaOptimizer] = None,
    session: Optional[requests.Session] = None,
) -> Optional[Path]:
    """Write the single-file document and return its path (None in optimize-only mode)."""
    entry = locate_entry(settings, input_name)
    base_dir = entry.parent
    ctx = RunContext(settings, base_dir, optimizer=optimizer, session=session)

    if settings.optimize_only:
        assets_dir = None
        if settings.assets_dir:
            p = Path(settings.assets_dir)
            assets_dir = p if p.is_absolute() else base_dir / p
        optimize_assets_in_place(ctx, assets_dir)
        return None

    logging.info("inlining %s", entry)
    html = entry.read_text(encoding="utf-8")
    html = inline_document(ctx, html, base_dir)

    out_dir = Path(settings.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / entry.name
    out_path.write_text(html, encoding="utf-8")

    logging.info("one-file document created at: %s", out_path)
    logging.info(
        "total size: %.1f KB (saved %.1f KB)",
        ctx.stats.final_bytes / 1024,
        ctx.stats.saved_bytes / 1024,
    )
    return out_path


# -------------------- Config loader --------------------

CONFIG_GROUPS = (
    "image",
    "video",
    "audio",
    "font",
    "mesh",
    "html",
    "css",
    "js",
    "externals",
    "general",
)

# group keys whose field name is not "<group>_<key>" or "<key>"
CONFIG_ALIASES = {
    ("html", "minify"): "minify_html",
    ("css", "minify"): "minify_css",
    ("js", "minify"): "minify_js",
    ("js", "bundle"): "bundle_js",
    ("externals", "fetch"): "fetch_externals",
    ("externals", "headers"): "extra_headers",
    ("mesh", "simplify"): "glb_simplify",
    ("general", "out_dir"): "output_dir",
}

# accepted at the top level besides Settings fields
CLI_ONLY_KEYS = {"verbose", "input"}


def load_config_file(path: str) -> Dict:
    p = Path(path)
    suffix = p.suffix.lower()
    try:
        if suffix in (".toml", ".tml"):
            data = tomllib.loads(p.read_text(encoding="utf-8"))
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        else:
            raise InlineError(f"unsupported config format {suffix!r}, use .toml or .yaml")
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise InlineError(f"cannot read config {p}: {e}") from e
    if not isinstance(data, dict):
        raise InlineError(f"config {p} must hold a mapping at the top level")
    return data


def flatten_config(cfg: Dict) -> Dict:
    known = Settings.__dataclass_fields__
    flat = {}
    for key, value in cfg.items():
        if key in CONFIG_GROUPS and isinstance(value, dict):
            continue
        if key in known or key in CLI_ONLY_KEYS:
            flat[key] = value
        else:
            logging.warning("unknown config key %r ignored", key)
    for g in CONFIG_GROUPS:
        if not isinstance(cfg.get(g), dict):
            continue
        # [video] crf = 30 -> video_crf
        for k, v in cfg[g].items():
            name = CONFIG_ALIASES.get((g, k))
            if name is None:
                name = f"{g}_{k}" if f"{g}_{k}" in known else k
            if name not in known:
                logging.warning("unknown config key [%s] %s ignored", g, k)
                continue
            flat[name] = v
    return flat


# -------------------- CLI --------------------


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Pack an HTML page and everything it references into one file.",
        add_help=True,
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)
    p.add_argument(
        "input",
        nargs="?",
        default="index.html",
        help="entry HTML file name (searched under --search-root) or path",
    )
    p.add_argument("--verbose", action="store_true", help="debug logging")
    p.add_argument("--out-dir", dest="output_dir", default="dist", help="output directory")
    p.add_argument(
        "--search-root", default=".", help="directory searched for the entry file"
    )
    p.add_argument("--workers", type=int, default=8, help="concurrent resolutions per pass")
    p.add_argument("--timeout", type=float, default=15.0, help="HTTP timeout seconds")
    p.add_argument(
        "--max-bytes", type=int, default=50_000_000, help="max bytes per remote download"
    )
    p.add_argument(
        "--header",
        dest="extra_headers",
        action="append",
        default=[],
        help="extra request header 'Name: value'",
    )

    # toggles
    p.add_argument(
        "--fetch-externals", action="store_true", help="download and inline http(s) assets"
    )
    p.add_argument("--minify-html", action="store_true", help="strip comments/whitespace")
    p.add_argument("--minify-css", action="store_true", help="minify inlined CSS")
    p.add_argument("--minify-js", action="store_true", help="minify inlined JS")
    p.add_argument(
        "--no-bundle-js",
        dest="bundle_js",
        action="store_false",
        help="inline scripts as-is instead of bundling with esbuild",
    )

    # image
    p.add_argument("--jpeg-quality", type=int, default=50)
    p.add_argument("--webp-quality", type=int, default=50)
    p.add_argument("--png-compress-level", type=int, default=9)
    p.add_argument("--no-png-palette", dest="png_palette", action="store_false")
    p.add_argument("--png-colors", type=int, default=256)
    p.add_argument("--gif-lossy", type=int, default=180)
    p.add_argument("--gif-colors", type=int, default=48)

    # video
    p.add_argument("--codec", dest="video_codec", default="libx264")
    p.add_argument("--crf", dest="video_crf", type=int, default=26)
    p.add_argument("--preset", dest="video_preset", default="slow")
    p.add_argument("--tune", dest="video_tune", default=None, help="film|animation|grain")
    p.add_argument("--max-width", dest="video_max_width", type=int, default=540)
    p.add_argument("--fps", dest="video_fps", type=float, default=None)
    p.add_argument("--two-pass", dest="video_two_pass", action="store_true")
    p.add_argument("--target-mbps", dest="video_target_mbps", type=float, default=None)
    p.add_argument(
        "--max-rate-factor", dest="video_max_rate_factor", type=float, default=2.0
    )
    p.add_argument("--audio-kbps", dest="video_audio_kbps", type=int, default=160)
    p.add_argument("--no-faststart", dest="video_faststart", action="store_false")

    # audio / font / mesh
    p.add_argument("--mp3-kbps", dest="audio_mp3_kbps", type=int, default=128)
    p.add_argument("--font-subset", default=DEFAULT_FONT_SUBSET)
    p.add_argument("--glb-si", dest="glb_simplify", type=float, default=1.0)

    # optimize-only
    p.add_argument(
        "--optimize-only",
        action="store_true",
        help="optimize files under --assets-dir in place, no inlining",
    )
    p.add_argument("--assets-dir", default=None, help="relative to the entry file or absolute")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        try:
            cfg = load_config_file(preliminary.config)
        except InlineError as e:
            parser.error(str(e))
        parser.set_defaults(**flatten_config(cfg))
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    known = Settings.__dataclass_fields__
    values = {k: v for k, v in vars(args).items() if k in known}
    s = Settings(**values)
    s.workers = max(1, s.workers)
    s.jpeg_quality = max(1, min(100, s.jpeg_quality))
    s.webp_quality = max(1, min(100, s.webp_quality))
    s.png_compress_level = max(0, min(9, s.png_compress_level))
    s.png_colors = max(2, min(256, s.png_colors))
    return s


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )
    settings = settings_from_args(args)
    try:
        inline_html(settings, args.input)
    except (InlineError, OSError) as e:
        logging.error("build failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
