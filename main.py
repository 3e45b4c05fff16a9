#!/usr/bin/env python3
"""Run the ``jar-stream`` CLI from a source checkout; with no arguments it starts the server."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from jar_stream.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:] or ["serve"]))
