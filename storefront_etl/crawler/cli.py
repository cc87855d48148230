"""CLI for the storefront crawler."""
from __future__ import annotations

import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import yaml
from dotenv import load_dotenv

from ..antibot import ProxyConfig
from ..browser import PlaywrightEngine
from ..db import create_pool, get_dsn
from ..upsert import NullStore, PostgresStore
from .config import CrawlConfig
from .orchestrator import CrawlOrchestrator
from .queue import MemoryWorkQueue, PostgresWorkQueue

LOGGER = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def load_input(path: str | Path) -> Dict[str, Any]:
    """Read a crawl input document (JSON or YAML)."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise click.BadParameter("input file must contain a mapping", param_hint="--input-file")
    return data


def _require_dsn() -> str:
    dsn = get_dsn()
    if not dsn:
        raise click.ClickException("Database not configured: set PG_DSN or DATABASE_URL")
    return dsn


@click.group()
@click.option("--log-level", default=None, help="Log level [default: LOG_LEVEL or INFO]")
def cli(log_level: Optional[str]) -> None:
    """Storefront seller/listing crawler."""
    load_dotenv()
    _configure_logging(log_level or os.getenv("LOG_LEVEL", "INFO"))


@cli.command()
@click.option("--domain", "domains", multiple=True, help="Storefront hostname (repeatable)")
@click.option("--category", "categories", multiple=True, help="Category path or name (repeatable)")
@click.option("--input-file", type=click.Path(exists=True, dir_okay=False), help="Crawl input document (JSON or YAML)")
@click.option("--max-items", type=int, help="Stop after this many persisted listings [default: 1000]")
@click.option("--max-concurrency", type=int, help="Concurrent browser workers [default: 5]")
@click.option("--proxy-url", help="Proxy URL (defaults to PROXY_URL and provider variables)")
@click.option(
    "--queue",
    "queue_backend",
    type=click.Choice(["memory", "postgres"]),
    default="memory",
    show_default=True,
)
@click.option("--run-id", help="Run id for the postgres queue (resume an earlier run)")
@click.option("--dry-run", is_flag=True, help="Do not write to the database")
@click.option("--output", type=click.Path(dir_okay=False, writable=True), help="Write summary JSON here")
def crawl(
    domains: Tuple[str, ...],
    categories: Tuple[str, ...],
    input_file: Optional[str],
    max_items: Optional[int],
    max_concurrency: Optional[int],
    proxy_url: Optional[str],
    queue_backend: str,
    run_id: Optional[str],
    dry_run: bool,
    output: Optional[str],
) -> None:
    """Crawl category → product → seller pages and upsert listings."""
    data = {}
    if input_file:
        data = load_input(input_file)
    if domains:
        data["domains"] = list(domains)
    if categories:
        data["categories"] = list(categories)
    if max_items is not None:
        data["maxItems"] = max_items
    if max_concurrency is not None:
        data["maxConcurrency"] = max_concurrency
    data.setdefault("headless", _env_bool("CRAWL_HEADLESS", True))

    try:
        config = CrawlConfig.from_input(data)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    if proxy_url:
        config.proxy = ProxyConfig.from_url(proxy_url)
    elif config.proxy is None:
        config.proxy = ProxyConfig.from_env()

    dsn = None if dry_run else get_dsn()
    pool = create_pool(dsn, maxconn=config.max_concurrency + 1) if dsn else None
    if pool is None:
        LOGGER.warning("Database not configured or dry run: upserts will be skipped")
        store = NullStore()
    else:
        store = PostgresStore(pool)
        store.ensure_schema()

    if queue_backend == "postgres":
        if pool is None:
            raise click.ClickException("The postgres queue needs PG_DSN/DATABASE_URL and no --dry-run")
        run_id = run_id or uuid.uuid4().hex[:12]
        click.echo(f"Run id: {run_id}")
        queue = PostgresWorkQueue(pool, run_id, max_retries=config.max_retries, worker_id=os.getenv("HOSTNAME", "localhost"))
    else:
        queue = MemoryWorkQueue(max_retries=config.max_retries)

    engine = PlaywrightEngine(headless=config.headless, navigation_timeout=config.navigation_timeout)
    orchestrator = CrawlOrchestrator(config, engine, store, queue=queue)
    orchestrator.install_signal_handlers()

    try:
        summary = orchestrator.run()
    finally:
        if pool is not None:
            pool.closeall()

    rendered = summary.model_dump_json(by_alias=True, indent=2)
    if output:
        Path(output).write_text(rendered, encoding="utf-8")
    click.echo(rendered)


@cli.command("init-db")
def init_db() -> None:
    """Create the sellers/products/listings tables and the crawl queue table."""
    pool = create_pool(_require_dsn(), maxconn=1)
    try:
        PostgresStore(pool).ensure_schema()
        PostgresWorkQueue(pool, run_id="init", resume=False)
    finally:
        pool.closeall()
    click.echo("✅ Schema ready")


@cli.command("queue-stats")
@click.option("--run-id", required=True, help="Run id printed by `crawl --queue postgres`")
def queue_stats(run_id: str) -> None:
    """Show durable queue statistics for a run."""
    pool = create_pool(_require_dsn(), maxconn=1)
    try:
        stats = PostgresWorkQueue(pool, run_id, resume=False).stats()
    finally:
        pool.closeall()

    click.echo(f"\n📊 Queue Statistics ({run_id})\n" + "=" * 40)
    click.echo(f"Total items: {sum(stats.values())}")
    for status, count in sorted(stats.items()):
        click.echo(f"  {status:15s}: {count:6d}")
    click.echo()


if __name__ == "__main__":
    cli()
