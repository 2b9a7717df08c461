"""routelog CLI — Typer-based command-line interface.

Provides the ``routelog`` command with subcommands for inspecting routes,
resolving templates, writing test events, reading and decrypting log files,
and generating encryption keys.

All output uses Rich for formatted terminal display.
"""
