"""Telemetry wrapper for Discord slash commands."""
from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable

import discord

from .telemetry import TelemetryCollector, get_telemetry

logger = logging.getLogger(__name__)


def _collector_for(interaction: discord.Interaction) -> TelemetryCollector:
    client = getattr(interaction, "client", None)
    return getattr(client, "telemetry", None) or get_telemetry()


def track_command(func: Callable) -> Callable:
    """Record usage, latency and failures of a slash command handler."""

    @functools.wraps(func)
    async def wrapper(interaction: discord.Interaction, *args, **kwargs) -> Any:
        collector = _collector_for(interaction)
        player_id = str(interaction.user.id)
        started = time.perf_counter()
        succeeded = False
        try:
            result = await func(interaction, *args, **kwargs)
        except Exception as exc:
            collector.track_error(
                type(exc).__name__,
                command=func.__name__,
                player_id=player_id,
                error_details=str(exc),
            )
            raise
        else:
            succeeded = True
            return result
        finally:
            channel = getattr(interaction, "channel_id", None)
            try:
                collector.track_command(
                    func.__name__,
                    player_id,
                    str(interaction.guild_id) if interaction.guild_id else "dm",
                    success=succeeded,
                    duration_ms=(time.perf_counter() - started) * 1000,
                    channel_id=str(channel) if channel is not None else "dm",
                )
            except Exception:
                logger.debug("Could not record telemetry for %s", func.__name__, exc_info=True)

    return wrapper
