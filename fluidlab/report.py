"""
report.py — Status lines
=========================
Tagged progress lines in the "[Simulation] ..." style. They go to stderr so
stdout carries nothing but the JSON response, and only when verbose output
was asked for (`main.py --verbose`).
"""

import sys


_verbose = False


def set_verbose(enabled: bool):
    global _verbose
    _verbose = bool(enabled)


def status(tag: str, message: str):
    if _verbose:
        print(f"[{tag}] {message}", file=sys.stderr)
