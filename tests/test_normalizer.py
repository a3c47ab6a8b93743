import time
from datetime import datetime, timezone

from aggregator.processors.checksum import checksum, generate_id
from aggregator.processors.normalizer import (
    ensure_list,
    names_of,
    parse_datetime,
    select_link,
    strip_html,
    truncate,
)


def test_checksum_is_deterministic_sha256():
    a = checksum("Attention Is All You Need" + "We propose the Transformer.")
    b = checksum("Attention Is All You Need" + "We propose the Transformer.")
    assert a == b
    assert len(a) == 64
    assert a != checksum("Attention Is All You Need")


def test_generate_id_is_md5_hex():
    assert generate_id("https://example.com") == generate_id("https://example.com")
    assert len(generate_id("https://example.com")) == 32


def test_ensure_list_wraps_scalar_and_keeps_lists():
    assert ensure_list(None) == []
    assert ensure_list("a") == ["a"]
    assert ensure_list({"name": "x"}) == [{"name": "x"}]
    assert ensure_list(("a", "b")) == ["a", "b"]
    assert ensure_list(["a"]) == ["a"]


def test_strip_html_decodes_entities():
    assert strip_html("<p>Fast &amp; <b>small</b></p>\n<p>model</p>") == "Fast & small model"
    assert strip_html(None) == ""


def test_truncate_adds_suffix_only_when_needed():
    assert truncate("short", 10) == "short"
    out = truncate("a" * 50, 20)
    assert len(out) == 20
    assert out.endswith("...")


def test_parse_datetime_handles_common_shapes():
    assert parse_datetime("2024-11-01T12:00:00Z") == datetime(2024, 11, 1, 12, tzinfo=timezone.utc)
    assert parse_datetime(1730462400) == datetime(2024, 11, 1, 12, tzinfo=timezone.utc)
    assert parse_datetime(time.strptime("2024-11-01 12:00", "%Y-%m-%d %H:%M")) == datetime(
        2024, 11, 1, 12, tzinfo=timezone.utc
    )
    naive = parse_datetime(datetime(2024, 5, 5, 8, 0))
    assert naive.tzinfo is not None


def test_parse_datetime_falls_back_instead_of_failing():
    fallback = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_datetime("not a date", fallback) == fallback
    assert parse_datetime(None, fallback) == fallback
    assert parse_datetime("", fallback) == fallback


def test_names_of_keeps_order_and_duplicates():
    authors = [{"name": "Dan Chen"}, {"name": "Alice"}, {"name": "Dan Chen"}]
    assert names_of(authors) == ["Dan Chen", "Alice", "Dan Chen"]
    assert names_of({"name": "Solo"}) == ["Solo"]
    assert names_of("Solo") == ["Solo"]


def test_select_link_by_role():
    links = [
        {"href": "http://arxiv.org/abs/1", "rel": "alternate", "type": "text/html"},
        {"href": "http://arxiv.org/pdf/1", "rel": "related", "title": "pdf"},
    ]
    assert select_link(links, "pdf") == "http://arxiv.org/pdf/1"
    assert select_link(links, "alternate") == "http://arxiv.org/abs/1"
    assert select_link(links, "doi") == ""


def test_select_link_falls_back_to_first_when_untagged():
    assert select_link([{"href": "http://x/1"}, {"href": "http://x/2"}], "pdf") == "http://x/1"
    assert select_link({"href": "http://only"}, "alternate") == "http://only"
    assert select_link([], "pdf") == ""
