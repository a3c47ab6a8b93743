from datetime import datetime, timezone

import pytest

from aggregator.errors import ParseError
from aggregator.fetchers.arxiv_fetcher import ArxivFetcher, extract_arxiv_id
from aggregator.fetchers.base_fetcher import CrawlState, FetchParams, SourceType
from aggregator.orchestrator import CrawlOrchestrator
from aggregator.processors.checksum import checksum

from conftest import FakeResponse, load_fixture, make_config, make_http

SINGLE_ENTRY = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>ArXiv Query</title>
  <id>http://arxiv.org/api/single</id>
  <updated>2024-01-10T00:00:00Z</updated>
  <entry>
    <id>http://arxiv.org/abs/2402.00042v3</id>
    <title>A Lone
      Paper</title>
    <summary>Only one entry and one author.</summary>
    <author><name>Solo Author</name></author>
    <link href="http://arxiv.org/abs/2402.00042v3" rel="alternate" type="text/html"/>
  </entry>
</feed>
"""

FIXTURE_TEXTS = [
    ("Scaling Laws for Reasoning Agents", "We study how agent reasoning ability scales with model size."),
    ("Planning with Language Models", "A planner built on top of a language model."),
    ("Benchmarking Tool Use", "We introduce a benchmark for tool use."),
    ("Safe Exploration in Reinforcement Learning", "Safety constraints for exploration."),
    ("Multimodal Retrieval at Scale", "Retrieval over images and text."),
]

ERROR_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>ArXiv Query</title>
  <id>http://arxiv.org/api/errors</id>
  <entry>
    <id>http://arxiv.org/api/errors#incorrect_id_format</id>
    <title>Error</title>
    <summary>incorrect id format</summary>
  </entry>
</feed>
"""


def test_extract_arxiv_id():
    assert extract_arxiv_id("http://arxiv.org/abs/2401.01234v2") == "2401.01234"
    assert extract_arxiv_id("http://arxiv.org/abs/cs/0112017v1") == "cs/0112017"
    assert extract_arxiv_id("") == ""


def test_crawl_cat_cs_ai_returns_five_papers(clock):
    http, session = make_http(FakeResponse(content=load_fixture("arxiv_5_entries.xml")))
    cfg = make_config(SourceType.ARXIV)
    orchestrator = CrawlOrchestrator(
        {SourceType.ARXIV: ArxivFetcher(cfg, http=http)},
        {SourceType.ARXIV: cfg},
        sleep=clock.sleep,
        clock=clock,
    )

    result = orchestrator.run_source("arxiv", FetchParams(query="cat:cs.AI", max_results=5))

    assert result.success
    assert result.state == CrawlState.SUCCEEDED
    assert len(result.papers) == 5
    for paper, (title, summary) in zip(result.papers, FIXTURE_TEXTS):
        assert paper.title == title
        assert paper.checksum == checksum(title + summary)
    assert len({p.checksum for p in result.papers}) == 5
    sent = session.calls[0]["params"]
    assert sent["search_query"] == "cat:cs.AI"
    assert sent["max_results"] == 5
    assert sent["sortBy"] == "submittedDate"


def test_parse_fields():
    fetcher = ArxivFetcher(make_config(SourceType.ARXIV))
    records = fetcher.parse(load_fixture("arxiv_5_entries.xml"), FetchParams(query="cat:cs.AI"))
    first = records[0]
    assert first.id == "2401.00001"
    assert first.authors == ["Alice Zhang", "Bob Li"]
    assert first.tags == ["cs.AI", "cs.LG"]
    assert first.links["pdf"] == "http://arxiv.org/pdf/2401.00001v1"
    assert first.links["abstract"] == "http://arxiv.org/abs/2401.00001v1"
    assert first.url == "http://arxiv.org/abs/2401.00001v1"
    assert first.published_at == datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
    assert first.updated_at == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)
    assert first.category == "人工智能"
    assert first.extra["primary_category"] == "cs.AI"
    # 重复作者保持原样
    assert records[2].authors == ["Dan Chen", "Dan Chen"]


def test_single_entry_single_author_is_a_list():
    fetched_at = datetime(2024, 3, 1, tzinfo=timezone.utc)
    fetcher = ArxivFetcher(make_config(SourceType.ARXIV))
    records = fetcher.parse(SINGLE_ENTRY, FetchParams(query="all:lone"), fetched_at=fetched_at)
    assert len(records) == 1
    record = records[0]
    assert record.title == "A Lone Paper"
    assert record.authors == ["Solo Author"]
    assert record.id == "2402.00042"
    # 无 pdf 链接、无日期
    assert record.links["pdf"] == ""
    assert record.published_at == fetched_at
    assert record.updated_at == fetched_at


def test_missing_feed_root_is_parse_error():
    fetcher = ArxivFetcher(make_config(SourceType.ARXIV))
    with pytest.raises(ParseError) as exc:
        fetcher.parse(b"<html><body>Service unavailable</body></html>", FetchParams(query="cat:cs.AI"))
    assert exc.value.params["query"] == "cat:cs.AI"


def test_api_error_entry_is_parse_error():
    fetcher = ArxivFetcher(make_config(SourceType.ARXIV))
    with pytest.raises(ParseError):
        fetcher.parse(ERROR_FEED, FetchParams(query="id:bad"))


def test_query_helpers_and_defaults():
    assert ArxivFetcher.search_params("diffusion models").query == "all:diffusion models"
    assert ArxivFetcher.author_params("Yann LeCun").query == 'au:"Yann LeCun"'
    defaults = ArxivFetcher(make_config(SourceType.ARXIV)).default_queries()
    assert [p.query for p in defaults] == ["cat:cs.AI", "cat:cs.LG", "cat:cs.CL", "cat:cs.CV", "cat:cs.NE"]
