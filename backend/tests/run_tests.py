#!/usr/bin/env python3
"""
Profile image test runner

Usage:
    python tests/run_tests.py              # run all tests
    python tests/run_tests.py -v           # verbose
    python tests/run_tests.py -k upload    # only tests matching "upload"
    python tests/run_tests.py --report     # HTML report

Quick start:
    pip install -e ".[test]"
    cd backend
    python tests/run_tests.py
"""

import subprocess
import sys
import os
from pathlib import Path

# Run from the backend directory
backend_dir = Path(__file__).parent.parent
os.chdir(backend_dir)


def main():
    cmd = [sys.executable, "-m", "pytest", "tests/"]

    args = sys.argv[1:]

    if not any(arg.startswith("-v") for arg in args):
        cmd.append("-v")

    if "--report" in args:
        args.remove("--report")
        cmd.extend(["--html=tests/report.html", "--self-contained-html"])

    cmd.extend(args)

    print(f"\n{'='*60}")
    print("Profile image tests")
    print(f"{'='*60}")
    print(f"Command: {' '.join(cmd)}")
    print(f"{'='*60}\n")

    result = subprocess.run(cmd)
    sys.exit(result.returncode)


if __name__ == "__main__":
    main()
