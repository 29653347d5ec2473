#!/usr/bin/env python3
"""Entry point for the bundled NeuralAgent session server.

Used when the backend ships inside the desktop app (PyInstaller). Sets up
paths for frozen executables, configures logging and starts the FastAPI
server via uvicorn.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


def setup_paths() -> None:
    """Configure working directory for a frozen executable."""
    if not getattr(sys, "frozen", False):
        return

    base_path = Path(sys._MEIPASS)
    if str(base_path) not in sys.path:
        sys.path.insert(0, str(base_path))

    os.chdir(base_path)


def main() -> None:
    """Start the FastAPI server."""
    setup_paths()

    import uvicorn

    from neuralagent.api.server import app
    from neuralagent.logging_setup import setup_logging

    setup_logging(log_file=os.environ.get("NEURALAGENT_LOG_FILE", "./data/neuralagent.log"))
    uvicorn.run(app, host="127.0.0.1", port=int(os.environ.get("NEURALAGENT_PORT", "8000")))


if __name__ == "__main__":
    main()
