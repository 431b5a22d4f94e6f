#!/usr/bin/env python3
"""
Development server launcher for the HeftCoder orchestrator.
Starts the FastAPI app with auto-reload on the heftcoder package.
"""

import os
import subprocess
import sys
from pathlib import Path

GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


def print_colored(message: str, color: str = RESET):
    print(f"{color}{message}{RESET}")


def main():
    base_dir = Path(__file__).parent.resolve()
    port = os.getenv("PORT", "8000")

    print_colored(f"Starting orchestrator on http://localhost:{port}/functions/v1/orchestrator", GREEN)
    cmd = [
        sys.executable, "-m", "uvicorn", "heftcoder.main:app",
        "--host", "0.0.0.0", "--port", port, "--reload",
        "--reload-dir", str(base_dir / "heftcoder"),
        "--reload-exclude", "**/__pycache__/**",
    ]
    try:
        subprocess.run(cmd, cwd=base_dir, env={**os.environ, "PYTHONPATH": str(base_dir)}, check=True)
    except KeyboardInterrupt:
        print_colored("\nServer stopped.", GREEN)
    except subprocess.CalledProcessError as exc:
        print_colored(f"uvicorn exited with code {exc.returncode}", RED)
        sys.exit(exc.returncode)


if __name__ == "__main__":
    main()
