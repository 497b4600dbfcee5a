from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from apiload.analysis import Finding, assess
from apiload.config import (
    SCENARIOS,
    RateMode,
    RunConfig,
    StaticCatalog,
    TargetConfig,
    load_catalog,
    overrides_from_env,
    scenario_profile,
)
from apiload.errors import ConfigurationError
from apiload.loadgen import NoCredentials, StaticToken, format_progress, run_scenario
from apiload.logging_config import setup_logging
from apiload.metrics import StatsSnapshot

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Weighted API load generator")
    parser.add_argument("scenario", nargs="?", choices=sorted(SCENARIOS), help="Named scenario")
    parser.add_argument("--target", help="Base URL of the API under test")
    parser.add_argument("--duration", type=float, help="Override scenario duration (s)")
    parser.add_argument("--workers", type=int, help="Override worker count")
    parser.add_argument("--rate", type=float, help="Override target rate (req/s)")
    parser.add_argument("--ramp-up", type=float, help="Override ramp-up (s)")
    parser.add_argument(
        "--rate-mode",
        choices=[mode.value for mode in RateMode],
        default=RateMode.GLOBAL.value,
        help="global: rate is shared by all workers; per_worker: every worker runs at the full rate",
    )
    parser.add_argument("--timeout", type=float, default=30.0, help="Per-request timeout (s)")
    parser.add_argument("--drain-timeout", type=float, default=3.0)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--catalog", type=Path, help="JSON endpoint catalog")
    parser.add_argument("--token", help="Bearer token for endpoints that require auth")
    parser.add_argument("--output", type=Path, help="Write the final snapshot as JSON")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file")
    return parser


def build_config(args: argparse.Namespace, env: dict[str, Any]) -> RunConfig:
    name = args.scenario or env.get("scenario", "baseline")
    base_url = args.target or env.get("base_url")
    if not base_url:
        raise ConfigurationError("A target base URL is required (--target or APILOAD_BASE_URL)")
    profile = scenario_profile(
        name,
        duration_s=_pick(args.duration, env, "duration_s"),
        worker_count=_pick(args.workers, env, "worker_count"),
        target_rate=_pick(args.rate, env, "target_rate"),
        ramp_up_s=_pick(args.ramp_up, env, "ramp_up_s"),
    )
    return RunConfig(
        target=TargetConfig(base_url=base_url, timeout_s=args.timeout),
        scenario=profile,
        rate_mode=RateMode(args.rate_mode),
        drain_timeout_s=args.drain_timeout,
        seed=args.seed,
    )


def _pick(cli_value: Any, env: dict[str, Any], key: str) -> Any:
    return cli_value if cli_value is not None else env.get(key)


async def _run(config: RunConfig, args: argparse.Namespace) -> StatsSnapshot:
    catalog = load_catalog(args.catalog) if args.catalog else StaticCatalog()
    credentials = StaticToken(args.token) if args.token else NoCredentials()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop.set)
    except NotImplementedError:
        logger.debug("Signal handlers unavailable; Ctrl-C will cancel the run")

    async def progress(snapshot: StatsSnapshot) -> None:
        sys.stdout.write("\r" + format_progress(snapshot, config.scenario.duration_s))
        sys.stdout.flush()

    snapshot = await run_scenario(config, catalog, credentials, progress=progress, stop=stop)
    sys.stdout.write("\n")
    return snapshot


def format_summary(snapshot: StatsSnapshot, findings: list[Finding], top_errors: int = 5) -> list[str]:
    lines = [f"[{f.severity.value.upper()}] {f.metric}: {f.message}" for f in findings]
    errors = snapshot.error_types_by_frequency()
    if errors:
        lines.append("Top error types:")
        for message, count in errors[:top_errors]:
            share = count / snapshot.total_errors * 100.0
            lines.append(f"  {message}: {count:,} ({share:.1f}% of errors)")
    return lines


def main() -> None:
    args = _build_parser().parse_args()
    try:
        setup_logging(args.log_level, args.log_file)
        config = build_config(args, overrides_from_env())
        snapshot = asyncio.run(_run(config, args))
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        raise SystemExit(2) from exc

    expected_rate = config.per_worker_rate() * config.scenario.worker_count
    findings = assess(snapshot, expected_rate)
    for line in format_summary(snapshot, findings):
        print(line)
    if args.output:
        report = {
            "config": config.to_metadata(),
            "snapshot": snapshot.to_dict(),
            "findings": [asdict(f) for f in findings],
        }
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
        logger.info(f"Snapshot written to {args.output}")


if __name__ == "__main__":
    main()
