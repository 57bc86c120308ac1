from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from iptu_scraper.config import ScraperConfig, Settings
from iptu_scraper.driver_pool import DriverPool
from iptu_scraper.engine import ScraperEngine
from iptu_scraper.errors import JobSourceError, PoolStartupError
from iptu_scraper.job_source import InMemoryJobSource
from iptu_scraper.logging_setup import setup_logging
from iptu_scraper.models import RunStats
from iptu_scraper.pacing import PacingPolicy
from iptu_scraper.scrapers import IptuExtractor
from iptu_scraper.session import ChromeSessionFactory
from iptu_scraper.storage import JsonlStorage, ResultSink
from iptu_scraper.supabase import SupabaseClient

logger = logging.getLogger("iptu_scraper.cli")


def _load_numbers(numbers: Optional[str], path: Optional[str]) -> List[str]:
    values: List[str] = []
    if numbers:
        values.extend(n.strip() for n in numbers.split(",") if n.strip())
    if path:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                value = line.strip()
                if value and not value.startswith("#"):
                    values.append(value)
    return values


def _build_client(settings: Settings) -> SupabaseClient:
    settings.require_supabase()
    return SupabaseClient(
        base_url=settings.supabase_url,
        api_key=settings.supabase_anon_key,
        service_role_key=settings.supabase_service_role_key,
        machine_id=settings.machine_id,
    )


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def performance_status(stats: RunStats) -> str:
    if stats.success_rate >= 90.0 and stats.jobs_per_minute >= 5.0:
        return "EXCELLENT"
    if stats.success_rate >= 75.0 and stats.jobs_per_minute >= 3.0:
        return "GOOD"
    if stats.success_rate >= 50.0:
        return "MODERATE"
    return "NEEDS IMPROVEMENT"


def print_report(stats: RunStats) -> None:
    print("\nPERFORMANCE REPORT")
    print(f"  Total jobs:    {stats.total}")
    print(f"  Successful:    {stats.succeeded}")
    print(f"  Failed:        {stats.failed}")
    print(f"  Duration:      {format_duration(stats.elapsed_secs)}")
    print(f"  Throughput:    {stats.jobs_per_minute:.2f}/min")
    print(f"  Success rate:  {stats.success_rate:.1f}%")
    print(f"  Status:        {performance_status(stats)}")


def cmd_fetch(args: argparse.Namespace, settings: Settings) -> int:
    client = _build_client(settings)
    jobs = client.list_pending(args.limit)
    if not jobs:
        logger.info("No pending jobs found")
        return 0
    logger.info("Found %d pending jobs:", len(jobs))
    for job in jobs:
        print(f"  - {job.key} ({job.queue})")
    return 0


def cmd_results(args: argparse.Namespace, settings: Settings) -> int:
    client = _build_client(settings)
    rows = client.get_results(args.limit, args.offset)
    if not rows:
        logger.info("No results found")
        return 0
    logger.info("Found %d results:", len(rows))
    for row in rows:
        print(
            f"  - {row.get('contributor_number')} | Success: {row.get('sucesso')} "
            f"| Owner: {row.get('nome_proprietario')}"
        )
    return 0


def cmd_process(args: argparse.Namespace, settings: Settings) -> int:
    config = ScraperConfig(
        concurrency=args.concurrent,
        rate_limit_per_hour=args.rate_limit,
        headless=args.headless,
        machine_id=settings.machine_id,
    )
    numbers = _load_numbers(args.numbers, args.file)

    client: Optional[SupabaseClient] = None
    if numbers:
        job_source = InMemoryJobSource(default=numbers)
    else:
        client = _build_client(settings)
        job_source = client

    pacing = PacingPolicy()
    factory = ChromeSessionFactory(
        webdriver_url=settings.webdriver_url,
        headless=config.headless,
        page_load_timeout=config.timeout_secs,
    )
    logger.info("Initializing scraper with %d concurrent workers...", config.concurrency)
    pool = DriverPool(config.concurrency, factory)

    jsonl: Optional[JsonlStorage] = None
    try:
        sinks: List[ResultSink] = []
        if client is not None:
            sinks.append(client)
        if args.results:
            jsonl = JsonlStorage(args.results)
            sinks.append(jsonl)

        engine = ScraperEngine(
            config,
            pool,
            IptuExtractor(pacing=pacing, result_timeout=config.timeout_secs),
            pacing=pacing,
            sink=_FanOut(sinks) if sinks else None,
            job_source=job_source,
            batch_store=client,
        )
        signal.signal(signal.SIGINT, lambda *_: engine.request_stop())
        signal.signal(signal.SIGTERM, lambda *_: engine.request_stop())

        limit = len(numbers) if numbers else args.limit
        with engine:
            stats = engine.consume(limit)
    finally:
        pool.shutdown()
        if jsonl is not None:
            jsonl.close()

    logger.info("========== Processing Complete ==========")
    logger.info("Total processed: %d", stats.total)
    logger.info("Success: %d, Errors: %d", stats.succeeded, stats.failed)
    print_report(stats)
    return 0


class _FanOut(ResultSink):
    def __init__(self, sinks: List[ResultSink]) -> None:
        self._sinks = sinks

    def upload(self, result) -> None:
        for sink in self._sinks:
            try:
                sink.upload(result)
            except Exception as exc:  # noqa: BLE001
                logger.error("%s failed to store %s: %s", type(sink).__name__, result.job_key, exc)


def _str_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true/false, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="iptu-cli", description="IPTU data extraction CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", help="List pending jobs without claiming them")
    fetch.add_argument("-l", "--limit", type=int, default=10)

    process = sub.add_parser("process", help="Claim and scrape pending jobs")
    process.add_argument("-l", "--limit", type=int, default=10, help="Max jobs to process")
    process.add_argument("-c", "--concurrent", type=int, default=1, help="Browser sessions")
    process.add_argument("-r", "--rate-limit", type=int, default=100, help="Max jobs per hour (0 disables)")
    process.add_argument("--headless", type=_str_bool, default=True, help="Run Chrome headless (true/false)")
    process.add_argument("-f", "--file", help="Process contributor numbers from a file instead of the queue")
    process.add_argument("--numbers", help="Comma-separated contributor numbers instead of the queue")
    process.add_argument("--results", default=None, help="Also append results to this JSONL file")

    results = sub.add_parser("results", help="List stored results")
    results.add_argument("-l", "--limit", type=int, default=10)
    results.add_argument("-o", "--offset", type=int, default=0)
    return parser


COMMANDS = {
    "fetch": cmd_fetch,
    "process": cmd_process,
    "results": cmd_results,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    try:
        return COMMANDS[args.command](args, settings)
    except (JobSourceError, PoolStartupError, ValueError, OSError) as exc:
        logger.error("Startup failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
