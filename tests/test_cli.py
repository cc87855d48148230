import json

import pytest
from click.testing import CliRunner

from conftest import FakeEngine, build_shop
from storefront_etl.crawler import CrawlOrchestrator
from storefront_etl.crawler.cli import cli

DB_VARS = ("PG_DSN", "DATABASE_URL", "PG_USER", "PG_PASS", "PG_DB")


@pytest.fixture
def fake_engine(monkeypatch):
    engine = FakeEngine(build_shop(products=4))
    monkeypatch.setattr("storefront_etl.crawler.cli.PlaywrightEngine", lambda **kwargs: engine)
    monkeypatch.setattr(CrawlOrchestrator, "install_signal_handlers", lambda self: None)
    for name in DB_VARS + ("PROXY_URL",):
        monkeypatch.delenv(name, raising=False)
    return engine


@pytest.fixture
def input_file(tmp_path):
    path = tmp_path / "input.json"
    path.write_text(
        json.dumps(
            {
                "domains": ["example-shop.test"],
                "categories": ["electronics"],
                "maxConcurrency": 1,
                "minDelay": 0,
                "maxDelay": 0,
            }
        )
    )
    return path


def test_crawl_dry_run_writes_summary(fake_engine, input_file, tmp_path):
    output = tmp_path / "summary.json"
    result = CliRunner().invoke(
        cli,
        ["--log-level", "WARNING", "crawl", "--input-file", str(input_file), "--max-items", "2", "--dry-run", "--output", str(output)],
    )

    assert result.exit_code == 0, result.output
    summary = json.loads(output.read_text())
    assert summary["listingsProcessed"] == 2
    assert summary["domainsProcessed"] == ["example-shop.test"]
    assert summary["categoriesProcessed"] == ["electronics"]
    assert "runStartedAt" in summary and "runCompletedAt" in summary
    assert '"listingsProcessed": 2' in result.output
    assert len(fake_engine.fetches) == summary["pagesFetched"]


def test_crawl_without_domains_fails(fake_engine):
    result = CliRunner().invoke(cli, ["crawl", "--dry-run"])
    assert result.exit_code != 0
    assert "domains" in result.output
    assert fake_engine.fetches == []


def test_crawl_rejects_url_as_domain(fake_engine):
    result = CliRunner().invoke(cli, ["crawl", "--domain", "https://example-shop.test/", "--dry-run"])
    assert result.exit_code != 0
    assert "Invalid domain" in result.output


def test_postgres_queue_requires_database(fake_engine, input_file):
    result = CliRunner().invoke(cli, ["crawl", "--input-file", str(input_file), "--queue", "postgres", "--dry-run"])
    assert result.exit_code == 1
    assert "postgres queue" in result.output


@pytest.mark.parametrize("command", [["init-db"], ["queue-stats", "--run-id", "abc"]])
def test_database_commands_require_dsn(monkeypatch, command):
    for name in DB_VARS:
        monkeypatch.delenv(name, raising=False)
    result = CliRunner().invoke(cli, command)
    assert result.exit_code == 1
    assert "Database not configured" in result.output


def test_crawl_accepts_yaml_input(fake_engine, tmp_path):
    path = tmp_path / "input.yaml"
    path.write_text(
        "domains:\n"
        "  - example-shop.test\n"
        "categories: [electronics]\n"
        "maxItems: 1\n"
        "maxConcurrency: 1\n"
        "minDelay: 0\n"
        "maxDelay: 0\n"
    )
    output = tmp_path / "summary.json"
    result = CliRunner().invoke(cli, ["crawl", "--input-file", str(path), "--dry-run", "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert json.loads(output.read_text())["listingsProcessed"] == 1


def test_crawl_rejects_non_mapping_input(fake_engine, tmp_path):
    path = tmp_path / "input.yaml"
    path.write_text("- example-shop.test\n")
    result = CliRunner().invoke(cli, ["crawl", "--input-file", str(path), "--dry-run"])
    assert result.exit_code == 2
    assert "mapping" in result.output


def test_log_level_from_dotenv_is_honoured(monkeypatch):
    for name in DB_VARS + ("LOG_LEVEL",):
        monkeypatch.delenv(name, raising=False)
    levels = []
    monkeypatch.setattr("storefront_etl.crawler.cli.load_dotenv", lambda: monkeypatch.setenv("LOG_LEVEL", "DEBUG"))
    monkeypatch.setattr("storefront_etl.crawler.cli._configure_logging", levels.append)

    CliRunner().invoke(cli, ["init-db"])
    CliRunner().invoke(cli, ["--log-level", "WARNING", "init-db"])

    assert levels == ["DEBUG", "WARNING"]
