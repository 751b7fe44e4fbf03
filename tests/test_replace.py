import re
import threading

from web_inline import PayloadCache, map_concurrently, replace_all

BRACKET_RE = re.compile(r"\[(\w)\]")


def test_replacements_land_in_match_order_when_finished_out_of_order():
    finished = []
    y_done = threading.Event()

    def transform(m):
        if m.group(1) == "X":
            assert y_done.wait(5)
            finished.append("X")
            return "1"
        finished.append("Y")
        y_done.set()
        return "2"

    out = replace_all("a[X]b[Y]c", BRACKET_RE, transform, workers=2)
    assert out == "a1b2c"
    assert finished == ["Y", "X"]


def test_no_matches_never_calls_transform():
    calls = []
    out = replace_all("plain text", BRACKET_RE, lambda m: calls.append(m) or "", 4)
    assert out == "plain text"
    assert calls == []


def test_single_worker_runs_sequentially():
    assert replace_all("[a][b][c]", BRACKET_RE, lambda m: m.group(1).upper(), 1) == "ABC"


def test_map_concurrently_keeps_order():
    assert map_concurrently(lambda x: x * 2, [3, 1, 2], workers=3) == [6, 2, 4]
    assert map_concurrently(lambda x: x, [], workers=3) == []


def test_cache_computes_each_key_once_under_contention():
    cache = PayloadCache()
    calls = []
    gate = threading.Event()

    def compute():
        calls.append(1)
        gate.wait(1)
        return "payload"

    results = []

    def worker():
        results.append(cache.get_or_compute("k", compute))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    gate.set()
    for t in threads:
        t.join()
    assert results == ["payload"] * 5
    assert len(calls) == 1
    assert "k" in cache and len(cache) == 1


def test_cache_does_not_store_failures():
    cache = PayloadCache()
    assert cache.get_or_compute("k", lambda: None) is None
    assert "k" not in cache
    assert cache.get_or_compute("k", lambda: "late") == "late"
