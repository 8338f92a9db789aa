"""Entry point for `python -m kubepulse`.

Usage:
    python -m kubepulse
    python -m kubepulse -l        # use ~/.kube/config instead of in-cluster credentials
"""

from __future__ import annotations

from kubepulse.cli import cli

cli(prog_name="kubepulse")
