#!/usr/bin/env python3
"""Run import sorting, formatting and the test suite.

Usage:
    python scripts/lint_all.py [--check] [--skip-tests]

Options:
    --check: Only report formatting problems, do not rewrite files
    --skip-tests: Skip running pytest
"""

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
SOURCE_DIRS = ["invrec", "tests", "scripts"]


def run_command(cmd: List[str], description: str) -> bool:
    """Run a command from the project root; True when it exits with 0."""
    print(f"\n{'=' * 60}")
    print(f"Running: {description}")
    print(f"Command: {' '.join(cmd)}")
    print(f"{'=' * 60}\n")

    try:
        result = subprocess.run(cmd, cwd=PROJECT_ROOT, check=False)
    except FileNotFoundError as e:
        print(f"\n✗ Error: {e}")
        print("  Install the test extra: pip install -e '.[test]'\n")
        return False

    if result.returncode == 0:
        print(f"\n✓ {description} passed\n")
        return True

    print(f"\n✗ {description} failed (exit code: {result.returncode})\n")
    return False


def build_steps(check: bool, skip_tests: bool) -> List[tuple]:
    isort_cmd = ["isort", "--profile", "black", *SOURCE_DIRS]
    black_cmd = ["black", "--line-length", "110", *SOURCE_DIRS]
    if check:
        isort_cmd.extend(["--check-only", "--diff"])
        black_cmd.append("--check")

    steps = [
        (isort_cmd, "isort (import sorting)"),
        (black_cmd, "black (code formatting)"),
    ]
    if not skip_tests:
        steps.append((["pytest", "tests/", "-v"], "pytest (tests)"))
    return steps


def main() -> int:
    """Run every step and report.

    Returns:
        Exit code: 0 if all checks passed, 1 otherwise
    """
    parser = argparse.ArgumentParser(description="Run formatting and testing checks")
    parser.add_argument("--check", action="store_true", help="Only check formatting (don't modify files)")
    parser.add_argument("--skip-tests", action="store_true", help="Skip running pytest")
    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("InvRec Code Quality Checks")
    print("=" * 60)

    failed = [
        description
        for cmd, description in build_steps(args.check, args.skip_tests)
        if not run_command(cmd, description)
    ]

    print("\n" + "=" * 60)
    if failed:
        print(f"✗ Failed: {', '.join(failed)}")
        print("=" * 60 + "\n")
        return 1

    print("✓ All checks passed!")
    print("=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
