"""LayoutLens command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from layoutlens.capture import run_capture
from layoutlens.config import CaptureConfig, ConfigError, load_settings
from layoutlens.imaging import default_toolchain
from layoutlens.importer import ImporterError, RunServerClient
from layoutlens.jobs import run_job
from layoutlens.logging_utils import configure_logging

logger = logging.getLogger("layoutlens.cli")


def _capture(args: argparse.Namespace) -> int:
    config = CaptureConfig.from_file(args.config)
    manifest = asyncio.run(run_capture(config))
    print(json.dumps({"id": manifest.id, "out_dir": manifest.out_dir, "shots": len(manifest.shots)}))
    return 0


def _job(args: argparse.Namespace) -> int:
    try:
        request = json.loads(Path(args.request).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read job request {args.request}: {exc}") from exc
    manifest = asyncio.run(run_job(args.runs_root, request))
    print(manifest.out_dir)
    return 0


def _serve(args: argparse.Namespace, settings) -> int:
    import uvicorn

    from layoutlens.server import create_app

    port = args.port or settings.PORT
    app = create_app(args.run_dir, port=port, toolchain=default_toolchain(settings))
    logger.info("Serving %s at http://localhost:%d", args.run_dir, port)
    uvicorn.run(app, host=args.host or settings.HOST, port=port)
    return 0


def _pull(args: argparse.Namespace, settings) -> int:
    async def pull():
        async with RunServerClient(args.server or settings.SERVER_URL) as client:
            return await client.pull(args.dest, by=args.group_by)

    written = asyncio.run(pull())
    logger.info("Wrote %d file(s) to %s", len(written), args.dest)
    return 0


def main(argv: list[str] | None = None) -> int:
    settings = load_settings()
    parser = argparse.ArgumentParser(prog="layoutlens", description="Multi-locale, multi-breakpoint page capture")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("capture", help="Run a capture from a config JSON file")
    p.add_argument("config")

    p = sub.add_parser("job", help="Create a fresh run directory and capture into it")
    p.add_argument("runs_root")
    p.add_argument("request", help="JSON file with every config field except outDir")

    p = sub.add_parser("serve", help="Serve a run directory over HTTP")
    p.add_argument("run_dir")
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--host", default=None)

    p = sub.add_parser("pull", help="Download a served run into a local directory")
    p.add_argument("dest")
    p.add_argument("--server", default=None)
    p.add_argument("--group-by", choices=["locale", "breakpoint"], default="locale")

    args = parser.parse_args(argv)
    configure_logging(args.log_level.upper(), args.log_file)

    try:
        if args.command == "capture":
            return _capture(args)
        if args.command == "job":
            return _job(args)
        if args.command == "serve":
            return _serve(args, settings)
        return _pull(args, settings)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    except ImporterError as exc:
        logger.error("%s", exc)
        return 1
    except Exception:
        logger.exception("%s failed", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
