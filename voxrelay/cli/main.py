"""Main CLI command group for voxrelay."""

from __future__ import annotations

import click

import voxrelay


@click.group()
@click.version_option(version=voxrelay.__version__, prog_name="voxrelay")
def cli() -> None:
    """voxrelay: realtime voice sessions (STT -> LLM -> TTS)."""
