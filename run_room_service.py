#!/usr/bin/env python3
"""
Launch a room service instance with explicit settings and instance id.
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path

import uvicorn


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run an interview room service instance for a specific platform settings file.",
    )
    parser.add_argument("--instance", required=True, help="Instance id (e.g. office-a).")
    parser.add_argument("--host", default="0.0.0.0", help="Service bind host.")
    parser.add_argument("--port", type=int, required=True, help="Service bind port.")
    parser.add_argument(
        "--archive-dir",
        default=None,
        help="Override interview archive directory. Default: ./archive/<instance>.",
    )
    parser.add_argument(
        "--platform-settings",
        required=True,
        help="Required path to platform settings JSON (e.g. ./room_platform/settings/default.json).",
    )
    parser.add_argument(
        "--cors-origins",
        default=None,
        help="Comma-separated allowed browser origins.",
    )
    parser.add_argument("--log-level", default="info", help="Uvicorn log level.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    archive_dir = (
        Path(args.archive_dir).expanduser()
        if args.archive_dir
        else Path(__file__).parent / "archive" / args.instance
    )

    os.environ["INSTANCE_ID"] = args.instance
    os.environ["ROOM_SERVICE_HOST"] = args.host
    os.environ["ROOM_SERVICE_PORT"] = str(args.port)
    os.environ["ARCHIVE_DIR"] = str(archive_dir)
    os.environ["PLATFORM_SETTINGS_PATH"] = str(Path(args.platform_settings).expanduser())
    if args.cors_origins is not None:
        os.environ["CORS_ORIGINS"] = args.cors_origins

    from room_service import PLATFORM_SETTINGS, app  # Import after env config

    print(
        f"Starting interview room service platform={PLATFORM_SETTINGS.platform_id} "
        f"instance={args.instance} bind=http://{args.host}:{args.port} "
        f"archive_dir={archive_dir} settings={os.environ['PLATFORM_SETTINGS_PATH']}"
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
