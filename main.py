#!/usr/bin/env python3
"""
Entry point for a quick end-to-end check of the force pipeline.

This script builds a simulated session and delegates all processing to the
kbforce CLI replay path.
"""

from __future__ import annotations
from kbforce.cli import main


def build_argv() -> list[str]:
    return [
        "simulate",
        "--seconds", "10",
        "--kettlebell", "16",
        "--body", "70",
        "--exercise", "swing",
    ]


if __name__ == "__main__":
    raise SystemExit(main(build_argv()))
