import json

import pytest

import collect

SETTINGS = """
output:
  data_dir: data
defaults:
  delay_ms: 0
sources:
  arxiv: {enabled: false}
  github: {enabled: false}
  rss: {enabled: false}
  stackoverflow: {enabled: false}
  paperswithcode:
    enabled: true
    mode: mock
    max_results: 4
"""


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "settings.yaml").write_text(SETTINGS, encoding="utf-8")
    return tmp_path


def stored(workdir):
    return json.loads((workdir / "data" / "records.json").read_text(encoding="utf-8"))["records"]


def test_run_all_enabled_sources_and_store(workdir, capsys):
    assert collect.main([]) == 0
    out = capsys.readouterr().out
    assert "[FETCH] paperswithcode: 4 条" in out
    assert "[DONE]" in out
    assert len(stored(workdir)) == 4
    assert (workdir / "data" / "last_run.json").exists()

    # 全量再次运行：同样的内容只更新
    assert collect.main(["--full"]) == 0
    assert "新增 0 条，更新 4 条" in capsys.readouterr().out
    assert len(stored(workdir)) == 4


def test_single_source_with_explicit_params(workdir, capsys):
    assert collect.main(["--source", "papers-with-code", "--query", "robotics", "--max-results", "2"]) == 0
    titles = [r["title"] for r in stored(workdir)]
    assert len(titles) == 2
    assert all("robotics" in t for t in titles)


def test_dry_run_writes_nothing(workdir, capsys):
    assert collect.main(["--dry-run"]) == 0
    assert "[DRY-RUN]" in capsys.readouterr().out
    assert not (workdir / "data" / "records.json").exists()


def test_exit_code_when_nothing_collected(workdir, capsys):
    # 合成数据的发布时间都早于最近一小时
    assert collect.main(["--hours-back", "1"]) == 1


def test_unknown_source_is_an_error(workdir, capsys):
    assert collect.main(["--source", "hackernews"]) == 1


def test_missing_config_is_an_error(workdir, capsys):
    assert collect.main(["--config", "missing.yaml"]) == 1


def test_second_run_is_incremental_from_last_run(workdir, capsys):
    assert collect.main([]) == 0
    capsys.readouterr()
    # 合成数据都早于上次运行时间
    assert collect.main([]) == 1
    out = capsys.readouterr().out
    assert "[WINDOW] 增量采集" in out
    assert "新增 0 条，更新 0 条" in out


def test_sort_order_alone_builds_explicit_params(workdir, capsys):
    assert collect.main(["--source", "paperswithcode", "--sort-order", "asc"]) == 0
    titles = [r["title"] for r in stored(workdir)]
    # 显式参数只有一个查询（默认查询词）
    assert len(titles) == 4
    assert all("machine learning" in t for t in titles)


def test_health_reports_every_source(workdir, capsys):
    assert collect.main(["--health"]) == 0
    out = capsys.readouterr().out
    for name in ("arxiv", "github", "rss", "paperswithcode", "stackoverflow"):
        assert f'"{name}": {{' in out
    # 需要查询配额的数据源都未启用，不发请求
    assert '"quota"' not in out
