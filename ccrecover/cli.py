"""CLI entrypoints for ccrecover commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import ConfigError
from .errors import FatalStructuralError
from .logging import configure_logging
from .orchestrator import RecoveryPipeline


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    kwargs["default"] = argparse.SUPPRESS if suppress_default else False
    parser.add_argument("-v", "--verbose", **kwargs)


def _add_log_file_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "--log-file",
        type=Path,
        default=argparse.SUPPRESS if suppress_default else None,
        help="Also write log records (with timestamps) to this file.",
    )


def _add_build_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--layout",
        choices=["2.3.x", "2.4.x"],
        default=None,
        help="Build generation to try first (auto-detected when omitted).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a .ccrecover.yml file (defaults to the one in SOURCE).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for reconstruction and reconciliation.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccrecover",
        description="Recover an editable Cocos Creator 2.x project from a web build.",
    )
    _add_verbose_option(parser)
    _add_log_file_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    recover_parser = subparsers.add_parser(
        "recover",
        help="Decompile a build directory into a project directory.",
    )
    _add_verbose_option(recover_parser, suppress_default=True)
    _add_log_file_option(recover_parser, suppress_default=True)
    recover_parser.add_argument("source", help="Build output directory (web-mobile or web-desktop).")
    recover_parser.add_argument("output", help="Directory that receives the recovered project.")
    _add_build_options(recover_parser)
    recover_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the whole pipeline without writing the project.",
    )

    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Print a JSON summary of a build without writing anything.",
    )
    _add_verbose_option(inspect_parser, suppress_default=True)
    _add_log_file_option(inspect_parser, suppress_default=True)
    inspect_parser.add_argument("source", help="Build output directory.")
    _add_build_options(inspect_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_log_file_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for ccrecover commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "serve":
        from .service.app import run_service

        run_service(host=args.host, port=args.port)
        return

    if args.workers is not None and args.workers < 1:
        parser.exit(1, "--workers must be a positive integer\n")

    pipeline = RecoveryPipeline(config_path=args.config, workers=args.workers)

    if args.command == "recover":
        dry_run = bool(getattr(args, "dry_run", False))
        try:
            result = pipeline.run(
                args.source,
                args.output,
                layout_hint=args.layout,
                write=not dry_run,
            )
        except (FatalStructuralError, ConfigError) as exc:
            parser.exit(1, f"{exc}\n")
        except OSError as exc:
            parser.exit(1, f"ccrecover recover failed: {exc}\nRun with --verbose for more details.\n")
        orphans = len(result.assignments.orphans)
        print(
            f"Recovered {len(result.units)} modules and {len(result.assignments)} assets "
            f"({orphans} orphaned) from a {result.layout.value} build"
        )
        if dry_run:
            print("Dry run: nothing written")
        else:
            print(f"Project written to {_relativize(Path(args.output).expanduser().resolve())}")
        print(f"{len(result.diagnostics)} diagnostics")
    elif args.command == "inspect":
        try:
            result = pipeline.run(args.source, layout_hint=args.layout, write=False)
        except (FatalStructuralError, ConfigError) as exc:
            parser.exit(1, f"{exc}\n")
        except OSError as exc:
            parser.exit(1, f"ccrecover inspect failed: {exc}\nRun with --verbose for more details.\n")
        print(json.dumps(result.to_summary(), indent=2))
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
