#!/usr/bin/env python3
"""Run the docgate API with explicit args (avoids shell interpolation).

Settings come from the environment (see ``DocGateSettings.from_env``).
"""
from __future__ import annotations

import argparse

import uvicorn

from docgate.app import DocGateSettings, create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the docgate API server.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="info")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    app = create_app(DocGateSettings.from_env())
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
