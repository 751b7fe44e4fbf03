import pytest

from web_inline import (
    URI_DATA,
    URI_LOCAL,
    URI_REMOTE,
    URI_SKIP,
    classify_uri,
    decode_local_path,
    from_data_uri,
    mime_for_path,
    parse_srcset,
    to_data_uri,
)


@pytest.mark.parametrize(
    "ref,kind,norm",
    [
        ("img/a.png", URI_LOCAL, "img/a.png"),
        ("img/my%20file.png?v=3#top", URI_LOCAL, "img/my file.png"),
        ("/static/logo.svg", URI_LOCAL, "/static/logo.svg"),
        ("https://cdn.example.com/x.png", URI_REMOTE, "https://cdn.example.com/x.png"),
        ("HTTP://example.com/y.css", URI_REMOTE, "HTTP://example.com/y.css"),
        ("//cdn.example.com/z.js", URI_REMOTE, "https://cdn.example.com/z.js"),
        ("data:image/png;base64,AAAA", URI_DATA, "data:image/png;base64,AAAA"),
        ("blob:https://example.com/1234", URI_SKIP, "blob:https://example.com/1234"),
        ("mailto:someone@example.com", URI_SKIP, "mailto:someone@example.com"),
        ("#section", URI_SKIP, "#section"),
        ("", URI_SKIP, ""),
    ],
)
def test_classify_uri(ref, kind, norm):
    assert classify_uri(ref) == (kind, norm)


def test_decode_local_path_keeps_undecodable_text():
    # %ff is not valid utf-8
    assert decode_local_path("a%ffb.png") == "a%ffb.png"
    assert decode_local_path("x%2Fy.png#frag") == "x/y.png"


def test_mime_for_path():
    assert mime_for_path("a/B.PNG") == "image/png"
    assert mime_for_path("font.woff2") == "font/woff2"
    assert mime_for_path("model.glb") == "model/gltf-binary"
    assert mime_for_path("README") == "application/octet-stream"


def test_data_uri_decode():
    uri = to_data_uri("image/png", b"\x89PNG-bytes")
    assert uri.startswith("data:image/png;base64,")
    assert from_data_uri(uri) == ("image/png", b"\x89PNG-bytes")


def test_data_uri_decode_plain_and_charset():
    assert from_data_uri("data:text/plain,hello%20there") == ("text/plain", b"hello there")
    got = from_data_uri("data:text/css;charset=utf-8;base64,Ym9keXt9")
    assert got == ("text/css", b"body{}")


@pytest.mark.parametrize("bad", ["data:nocomma", "data:image/png;base64,abc"])
def test_data_uri_decode_failure(bad):
    assert from_data_uri(bad) is None


def test_parse_srcset_descriptors():
    assert parse_srcset("a.png 1x, b.png 2x") == [("a.png", "1x"), ("b.png", "2x")]
    assert parse_srcset("small.jpg 480w,large.jpg 1080w") == [
        ("small.jpg", "480w"),
        ("large.jpg", "1080w"),
    ]
    assert parse_srcset("only.png") == [("only.png", "")]


def test_parse_srcset_keeps_commas_inside_data_uris():
    v = "data:image/png;base64,AAAA 1x, b.png 2x"
    assert parse_srcset(v) == [("data:image/png;base64,AAAA", "1x"), ("b.png", "2x")]
    assert parse_srcset("a.png, b.png 2x") == [("a.png", ""), ("b.png", "2x")]
