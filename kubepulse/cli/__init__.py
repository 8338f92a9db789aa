"""KubePulse command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubepulse`` script).
"""

from kubepulse.cli.main import cli

__all__ = ["cli"]
