"""viewtube-release CLI — Typer-based command-line interface.

Provides the ``viewtube-release`` command with subcommands for generating
signing keys, packaging and signing releases, verifying artifacts, and
running verified updates on a host.

All output uses Rich for formatted terminal display.
"""
