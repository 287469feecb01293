from __future__ import annotations

import argparse
import sys

import uvicorn

from .api import create_app
from .build_locator import find_latest_build_id
from .config import ExporterConfig, get_exporter_config
from .crawler import build_artifacts_url, crawl
from .errors import ExporterError
from .http_fetch import new_client
from .logging_config import configure_logging
from .pipeline import page_fetcher
from .registry import GaugeRegistry
from .runtime_metrics import render_exporter_metrics_prometheus
from .worker import run_sampler_loop


def _config_from_args(args: argparse.Namespace) -> ExporterConfig:
    cfg = get_exporter_config()
    if getattr(args, "job", None):
        cfg.job_name = args.job
    if getattr(args, "host", None):
        cfg.listen_host = args.host
    if getattr(args, "port", None):
        cfg.listen_port = args.port
    if getattr(args, "interval", None):
        cfg.poll_interval_seconds = max(10, args.interval)
    return cfg


# === Command implementations ===


def cmd_serve(args: argparse.Namespace) -> None:
    """
    Serve /metrics and run the sampling threads until interrupted.
    """
    cfg = _config_from_args(args)
    app = create_app(cfg, start_sampler=not args.no_sampler)

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=cfg.listen_host,
            port=cfg.listen_port,
            log_config=None,
        )
    )
    # uvicorn raises SystemExit when the socket cannot be bound.
    try:
        server.run()
        started = server.started
    except SystemExit:
        started = False
    if not started:
        print(
            f"ERROR: Could not start metrics listener on {cfg.listen_host}:{cfg.listen_port}.",
            file=sys.stderr,
        )
        sys.exit(1)


def cmd_run_once(args: argparse.Namespace) -> None:
    """
    Run a single sampling cycle and print the resulting exposition.
    """
    cfg = _config_from_args(args)
    registry = GaugeRegistry()
    result = run_sampler_loop(cfg, registry, run_once=True)
    if result is None:
        sys.exit(1)

    lines = registry.render()
    lines.extend(render_exporter_metrics_prometheus())
    print("\n".join(lines))
    print(
        f"# build={result.build_id} cluster={result.cluster!r} "
        f"published={result.artifacts_published} failed={result.artifacts_failed}",
        file=sys.stderr,
    )


def cmd_latest_build(args: argparse.Namespace) -> None:
    cfg = _config_from_args(args)
    try:
        build_id = find_latest_build_id(
            cfg.job_name,
            feed_url=cfg.feed_url,
            timeout_seconds=cfg.http_timeout_seconds,
            max_bytes=cfg.max_feed_bytes,
            user_agent=cfg.user_agent,
        )
    except ExporterError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    print(build_id)


def cmd_list_artifacts(args: argparse.Namespace) -> None:
    """
    Crawl one build's listing and print the artifacts that would be exported.
    """
    cfg = _config_from_args(args)
    seed_url = build_artifacts_url(cfg.listing_root, cfg.job_name, args.build_id)

    with new_client(timeout_seconds=cfg.http_timeout_seconds, user_agent=cfg.user_agent) as client:
        found = 0
        for link in crawl(
            seed_url,
            build_id=args.build_id,
            fetch_page=page_fetcher(cfg, client),
            cluster_prefix=cfg.cluster_prefix,
            max_pages=cfg.max_pages,
        ):
            found += 1
            print(f"{link.kind:<20} cluster={link.cluster or '-':<24} {link.url}")

    if not found:
        print("No artifacts found.", file=sys.stderr)


# === Argument parser wiring ===


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="capz-exporter",
        description="Export CAPZ scalability test results as Prometheus gauges.",
    )
    parser.add_argument(
        "--job",
        help="Prow job name (default: CAPZ_EXPORTER_JOB_NAME or the Azure scalability job).",
    )
    subparsers = parser.add_subparsers(
        dest="command",
        metavar="COMMAND",
        required=True,
    )

    # serve
    p_serve = subparsers.add_parser(
        "serve",
        help="Serve /metrics and refresh gauges periodically.",
    )
    p_serve.add_argument("--host", help="Listen address (default: CAPZ_EXPORTER_HOST).")
    p_serve.add_argument("--port", type=int, help="Listen port (default: CAPZ_EXPORTER_PORT).")
    p_serve.add_argument(
        "--interval",
        type=int,
        help="Seconds between build lookups (default: CAPZ_EXPORTER_POLL_INTERVAL_SECONDS).",
    )
    p_serve.add_argument(
        "--no-sampler",
        action="store_true",
        default=False,
        help="Serve the endpoint without starting the sampling threads.",
    )
    p_serve.set_defaults(func=cmd_serve)

    # run-once
    p_once = subparsers.add_parser(
        "run-once",
        help="Run one sampling cycle and print the metrics it produced.",
    )
    p_once.set_defaults(func=cmd_run_once)

    # latest-build
    p_latest = subparsers.add_parser(
        "latest-build",
        help="Print the latest successful build ID of the job.",
    )
    p_latest.set_defaults(func=cmd_latest_build)

    # list-artifacts
    p_list = subparsers.add_parser(
        "list-artifacts",
        help="List result artifacts found in a build's listing.",
    )
    p_list.add_argument("--build-id", required=True, help="Prow build ID to crawl.")
    p_list.set_defaults(func=cmd_list_artifacts)

    return parser


def main(argv: list[str] | None = None) -> None:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)
    args.func(args)
