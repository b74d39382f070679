"""CLI entrypoints for gamedir commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import ConfigError, GamedirConfig, load_config
from .errors import ManifestInvalid, RunInProgress
from .logging import configure_logging
from .models import RunSummary
from .orchestrator import Orchestrator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default=".",
        help="Path to .gamedir.yml or the directory containing it (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gamedir",
        description="Build game repositories into a static game directory website.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write timestamped logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Sync, rebuild changed games, publish them and regenerate the homepage once.",
    )
    _add_verbose_option(run_parser, suppress_default=True)
    _add_config_option(run_parser)
    run_parser.add_argument(
        "--manifest",
        type=Path,
        default=None,
        help="Override the manifest path from the configuration.",
    )
    run_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of games processed concurrently.",
    )

    index_parser = subparsers.add_parser(
        "index",
        help="Regenerate the homepage from the games currently published.",
    )
    _add_verbose_option(index_parser, suppress_default=True)
    _add_config_option(index_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Expose run triggers over HTTP.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_config_option(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for gamedir commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        parser.exit(1, f"Invalid configuration: {exc}\n")

    if args.command == "run":
        _run(parser, config, args)
    elif args.command == "index":
        try:
            index_path = Orchestrator(config).regenerate_index()
        except ManifestInvalid as exc:
            parser.exit(1, f"Manifest rejected: {exc}\n")
        print(f"Homepage written to {_relativize(index_path)}")
    elif args.command == "serve":
        from .service import run_service

        run_service(config, host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run(parser: argparse.ArgumentParser, config: GamedirConfig, args: argparse.Namespace) -> None:
    if args.workers is not None and args.workers < 1:
        parser.exit(2, "--workers must be at least 1\n")
    orchestrator = Orchestrator(config)
    try:
        summary = orchestrator.run_once(args.manifest, workers=args.workers)
    except ManifestInvalid as exc:
        parser.exit(1, f"Manifest rejected, no games processed: {exc}\n")
    except RunInProgress as exc:
        parser.exit(1, f"{exc}\n")
    print(format_summary(summary))
    if not summary.ok:
        parser.exit(1)


def format_summary(summary: RunSummary) -> str:
    lines = [
        f"{len(summary.published)} published, {len(summary.skipped)} skipped, "
        f"{len(summary.failed)} failed"
    ]
    for outcome in summary.outcomes:
        lines.append(f"  {outcome.describe()}")
    if summary.index_path is not None:
        lines.append(f"Homepage written to {_relativize(summary.index_path)}")
    if summary.index_error:
        lines.append(f"Homepage generation failed: {summary.index_error}")
    return "\n".join(lines)


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
