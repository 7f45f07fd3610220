"""Tests for the command-line entry point."""

from __future__ import annotations

import httpx
import pytest

from devdocs_scraper import main as cli
from devdocs_scraper.db import Database
from devdocs_scraper.fetcher import Fetcher
from devdocs_scraper.models import Job
from devdocs_scraper.pipeline import CrawlPipeline

from .fakes import BASE_URL


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"db_path: {tmp_path / 'cli.db'}\n"
        f"log_dir: {tmp_path / 'logs'}\n"
        f"base_url: {BASE_URL}\n"
        "docs: [react]\n"
        "scraper:\n"
        "  concurrency: 2\n"
        "  inter_batch_delay: 0\n"
        "  retry_delay: 0\n"
    )
    return path


@pytest.fixture
def fake_upstream(monkeypatch, site):
    def factory(config, db):
        fetcher = Fetcher(config.scraper, transport=httpx.MockTransport(site.handler))
        return CrawlPipeline(config, db, fetcher=fetcher)

    monkeypatch.setattr(cli, "CrawlPipeline", factory)
    return site


def test_requires_something_to_do(config_file):
    with pytest.raises(SystemExit):
        cli.main(["--config", str(config_file)])


def test_crawl_doc(config_file, fake_upstream, tmp_path, capsys):
    assert cli.main(["--config", str(config_file), "--doc", "react"]) == 0

    out = capsys.readouterr().out
    assert "[completed]" in out
    assert "new=5" in out
    jobs = Database(str(tmp_path / "cli.db")).list_jobs()
    assert len(jobs) == 1
    assert jobs[0].items_new == 5


def test_crawl_all_uses_config_docs(config_file, fake_upstream, capsys):
    assert cli.main(["--config", str(config_file), "--all"]) == 0
    assert "Docs: react" in capsys.readouterr().out


def test_failed_run_exit_code(config_file, fake_upstream, capsys):
    fake_upstream.manifest_status = 503
    assert cli.main(["--config", str(config_file), "--doc", "react"]) == 1
    assert "ManifestUnavailable" in capsys.readouterr().out


def test_list_docs(config_file, fake_upstream, capsys):
    assert cli.main(["--config", str(config_file), "--list-docs"]) == 0
    out = capsys.readouterr().out
    assert "react" in out
    assert "2 documentation sets, 0 scraped." in out


def test_job_and_cancel(config_file, tmp_path, capsys):
    db = Database(str(tmp_path / "cli.db"))
    job = Job(target="react")
    db.create_job(job)

    assert cli.main(["--config", str(config_file), "--job", job.id]) == 0
    assert job.id in capsys.readouterr().out

    assert cli.main(["--config", str(config_file), "--cancel", job.id]) == 0
    assert db.is_cancel_requested(job.id)

    assert cli.main(["--config", str(config_file), "--cancel", "nope"]) == 1
    assert cli.main(["--config", str(config_file), "--job", "nope"]) == 1


def test_stats_and_jobs(config_file, fake_upstream, capsys):
    cli.main(["--config", str(config_file), "--doc", "react"])
    capsys.readouterr()

    assert cli.main(["--config", str(config_file), "--stats"]) == 0
    out = capsys.readouterr().out
    assert "CONTENT STATISTICS" in out
    assert "react" in out

    assert cli.main(["--config", str(config_file), "--jobs"]) == 0
    assert "completed" in capsys.readouterr().out


def test_list_docs_upstream_down(config_file, monkeypatch, capsys):
    def factory(config, db):
        transport = httpx.MockTransport(lambda r: httpx.Response(502))
        return CrawlPipeline(config, db, fetcher=Fetcher(config.scraper, transport=transport))

    monkeypatch.setattr(cli, "CrawlPipeline", factory)
    assert cli.main(["--config", str(config_file), "--list-docs"]) == 2
    assert "Catalogue unavailable" in capsys.readouterr().err


@pytest.mark.parametrize("flags", [
    ["--concurrency", "0"],
    ["--concurrency", "-2"],
    ["--delay", "-1"],
    ["--doc", "react/../git"],
])
def test_bad_arguments_rejected_before_any_job(config_file, fake_upstream, tmp_path, flags):
    args = ["--config", str(config_file)] + flags
    if "--doc" not in flags:
        args += ["--doc", "react"]

    with pytest.raises(SystemExit) as exc:
        cli.main(args)

    assert exc.value.code == 2
    assert Database(str(tmp_path / "cli.db")).list_jobs() == []
    assert fake_upstream.requests == []


def test_invalid_config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("scraper:\n  concurrency: 0\n")

    with pytest.raises(SystemExit):
        cli.main(["--config", str(path), "--stats"])


def test_stats_show_last_scraped(config_file, fake_upstream, tmp_path, capsys):
    cli.main(["--config", str(config_file), "--doc", "react"])
    capsys.readouterr()

    cli.main(["--config", str(config_file), "--stats"])

    source = Database(str(tmp_path / "cli.db")).get_source("devdocs:react")
    assert source["last_scraped_at"][:19] in capsys.readouterr().out
