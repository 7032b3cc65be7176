"""Discord bot entry point for Colony Ventures."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import discord
import yaml
from discord import app_commands
from discord.ext import commands

from .cards import OwnershipProbe
from .config import DEFAULT_STATE_DB, Settings, get_settings
from .errors import VentureError
from .models import ClaimResult, ResourceKind, Venture
from .service import VentureService
from .telemetry_decorator import track_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelRouter:
    """Configures which Discord channels receive automated posts."""

    ventures: Optional[int]
    admin: Optional[int]

    @staticmethod
    def from_env() -> "ChannelRouter":
        def _parse(env_key: str) -> Optional[int]:
            value = os.environ.get(env_key)
            if not value:
                return None
            try:
                return int(value)
            except ValueError:
                logger.warning("Invalid channel id %s for %s", value, env_key)
                return None

        return ChannelRouter(
            ventures=_parse("COLONY_VENTURES_CHANNEL_VENTURES"),
            admin=_parse("COLONY_VENTURES_CHANNEL_ADMIN"),
        )


async def _post_to_channel(
    bot: commands.Bot,
    channel_id: Optional[int],
    content: str,
    *,
    purpose: str,
) -> None:
    """Send content to a configured channel if possible."""

    if channel_id is None:
        logger.debug("Skipping %s post; channel not configured", purpose)
        return
    channel = bot.get_channel(channel_id)
    if channel is None:
        logger.warning("Failed to locate %s channel with id %s", purpose, channel_id)
        return
    try:
        await channel.send(content)
    except Exception:  # pragma: no cover - channel send failures logged
        logger.exception("Failed to send %s message", purpose)


_MAX_MESSAGE_LENGTH = 1900


def _clamp_text(text: str) -> str:
    """Ensure Discord-compatible message length."""

    if len(text) <= _MAX_MESSAGE_LENGTH:
        return text
    return text[: _MAX_MESSAGE_LENGTH - 1].rstrip() + "…"


def _format_message(lines: Iterable[str]) -> str:
    """Join message lines and clamp to Discord limits."""

    message = "\n".join(line for line in lines if line is not None)
    return _clamp_text(message)


def _format_vector(values: Sequence[int]) -> str:
    parts = [
        f"{values[kind]} {kind.name.lower()}" for kind in ResourceKind if values[kind]
    ]
    return ", ".join(parts) if parts else "nothing"


def _format_duration(seconds: int) -> str:
    hours, remainder = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _format_venture(venture: Venture, now: int) -> str:
    if venture.phase.is_terminal:
        return (
            f"`{venture.venture_id}` type {venture.venture_type}: "
            f"{venture.outcome.value} ({venture.phase.value})"
        )
    remaining = venture.time_remaining(now)
    status = f"ready in {_format_duration(remaining)}" if remaining else "ready to claim"
    return (
        f"`{venture.venture_id}` type {venture.venture_type}: "
        f"{_format_vector(venture.staked)} staked, {status}"
    )


def _format_claim(result: ClaimResult) -> List[str]:
    venture = result.venture
    if result.expired:
        return [
            f"Venture `{venture.venture_id}` expired unclaimed.",
            f"Burned: {_format_vector(result.burned)}",
        ]
    lines = [
        f"Venture `{venture.venture_id}` resolved: **{result.outcome.value.replace('_', ' ')}**",
        f"Rewards: {_format_vector(result.rewards)}",
    ]
    if any(result.burned):
        lines.append(f"Burned: {_format_vector(result.burned)}")
    if result.fee:
        lines.append(f"Claim fee: {result.fee}")
    if result.clamped_kinds:
        kinds = ", ".join(kind.name.lower() for kind in result.clamped_kinds)
        lines.append(f"Supply cap reached for {kinds}; rewards limited to your stake.")
    return lines


def _parse_setting_value(raw: str) -> object:
    """Interpret an admin-supplied value the way the settings file would."""

    value = yaml.safe_load(raw)
    return raw if value is None else value


def build_bot(
    db_path: Path,
    intents: Optional[discord.Intents] = None,
    *,
    settings: Optional[Settings] = None,
    ownership_probe: Optional[OwnershipProbe] = None,
) -> commands.Bot:
    """Build the bot; card ownership and colonies come from ``settings`` unless a probe is given."""

    intents = intents or discord.Intents.default()
    app_id_raw = os.environ.get("DISCORD_APP_ID")
    application_id: Optional[int] = None
    if app_id_raw:
        try:
            application_id = int(app_id_raw)
        except ValueError:
            logger.warning("Invalid DISCORD_APP_ID: %s", app_id_raw)
    bot = commands.Bot(command_prefix="/", intents=intents, application_id=application_id)
    service = VentureService(db_path, settings or get_settings(), ownership_probe=ownership_probe)
    setattr(bot, "venture_service", service)
    setattr(bot, "telemetry", service.telemetry)
    router = ChannelRouter.from_env()

    async def _respond_and_broadcast(
        interaction: discord.Interaction,
        lines: Iterable[str],
        *,
        purpose: str,
        header: Optional[str] = None,
        ephemeral: bool = True,
    ) -> None:
        """Send an ephemeral response and mirror it to the ventures channel."""

        message = _format_message(lines)
        await interaction.response.send_message(message, ephemeral=ephemeral)
        if router.ventures is None:
            return
        public_message = message if not header else _clamp_text(f"{header}\n{message}")
        if not public_message.strip():
            return
        await _post_to_channel(bot, router.ventures, public_message, purpose=purpose)

    async def _flush_admin_notifications() -> None:
        notes = service.drain_admin_notifications()
        if not notes:
            return
        if router.admin is None:
            for note in notes:
                logger.info("ADMIN: %s", note)
            return
        for note in notes:
            await _post_to_channel(bot, router.admin, note, purpose="admin")

    async def _reject(interaction: discord.Interaction, exc: Exception) -> None:
        await interaction.response.send_message(str(exc), ephemeral=True)
        await _flush_admin_notifications()

    @bot.event
    async def on_ready() -> None:
        logger.info("Colony Ventures bot connected as %s", bot.user)
        try:
            synced = await bot.tree.sync()
            logger.info("Synced %d commands", len(synced))
        except Exception as exc:  # pragma: no cover - logging only
            logger.exception("Failed to sync commands: %s", exc)

    @app_commands.command(name="venture_start", description="Stake resources on a venture")
    @track_command
    @app_commands.describe(
        venture_type="Venture type number",
        food="Food to stake",
        materials="Materials to stake",
        energy="Energy to stake",
        research="Research to stake",
    )
    async def venture_start(
        interaction: discord.Interaction,
        venture_type: int,
        food: int = 0,
        materials: int = 0,
        energy: int = 0,
        research: int = 0,
    ) -> None:
        player_id = str(interaction.user.id)
        try:
            venture = service.start_venture(
                player_id, venture_type, [food, materials, energy, research]
            )
        except ValueError as exc:
            await _reject(interaction, exc)
            return
        lines = [
            f"Venture `{venture.venture_id}` launched with {_format_vector(venture.staked)}.",
            f"Returns in {_format_duration(venture.end_time - venture.start_time)}.",
        ]
        if venture.bonus_multiplier_bps:
            lines.append(f"Success bonus: +{venture.bonus_multiplier_bps / 100:.2f}%")
        if venture.fee_paid:
            lines.append(f"Entry fee: {venture.fee_paid}")
        await _respond_and_broadcast(
            interaction,
            lines,
            purpose="venture start",
            header=f"{interaction.user.display_name} sets out on a venture:",
        )
        await _flush_admin_notifications()

    @app_commands.command(name="venture_claim", description="Claim a matured venture")
    @track_command
    @app_commands.describe(venture_id="Venture identifier")
    async def venture_claim(interaction: discord.Interaction, venture_id: str) -> None:
        player_id = str(interaction.user.id)
        try:
            result = service.claim_venture(player_id, venture_id)
        except VentureError as exc:
            await _reject(interaction, exc)
            return
        await _respond_and_broadcast(
            interaction,
            _format_claim(result),
            purpose="venture claim",
            header=f"{interaction.user.display_name} returns from a venture:",
        )
        await _flush_admin_notifications()

    @app_commands.command(name="venture_abandon", description="Abandon a venture for a partial refund")
    @track_command
    @app_commands.describe(venture_id="Venture identifier")
    async def venture_abandon(interaction: discord.Interaction, venture_id: str) -> None:
        player_id = str(interaction.user.id)
        try:
            venture = service.abandon_venture(player_id, venture_id)
        except VentureError as exc:
            await _reject(interaction, exc)
            return
        await interaction.response.send_message(
            _format_message(
                [
                    f"Venture `{venture.venture_id}` abandoned.",
                    f"Returned: {_format_vector(venture.rewards)}",
                    f"Burned: {_format_vector(venture.burned)}",
                ]
            ),
            ephemeral=True,
        )
        await _flush_admin_notifications()

    @app_commands.command(name="venture_status", description="Show your ventures and resources")
    @track_command
    async def venture_status(interaction: discord.Interaction) -> None:
        player_id = str(interaction.user.id)
        now = int(time.time())
        stats = service.get_user_stats(player_id)
        active = service.active_ventures(player_id)
        lines = [
            f"Resources: {_format_vector(service.balances(player_id))}",
            (
                f"Ventures: {stats.total_ventures} total, {stats.successful_ventures} won, "
                f"{stats.failed_ventures} lost; streak {stats.current_streak} "
                f"(best {stats.best_streak})"
            ),
        ]
        if active:
            lines.append("Active:")
            lines.extend(f"- {_format_venture(venture, now)}" for venture in active)
        else:
            lines.append("No active ventures.")
        cards = service.cards.list_attached(player_id)
        for venture_type, card in sorted(cards.items()):
            lock = " (in use)" if card.locked else ""
            lines.append(
                f"Card on type {venture_type}: {card.collection_id}#{card.token_id}{lock}"
            )
        await interaction.response.send_message(_format_message(lines), ephemeral=True)

    @app_commands.command(name="venture_estimate", description="Preview venture outcomes")
    @track_command
    @app_commands.describe(
        venture_type="Venture type number",
        food="Food to stake",
        materials="Materials to stake",
        energy="Energy to stake",
        research="Research to stake",
        use_card="Include your attached card",
    )
    async def venture_estimate(
        interaction: discord.Interaction,
        venture_type: int,
        food: int = 0,
        materials: int = 0,
        energy: int = 0,
        research: int = 0,
        use_card: bool = False,
    ) -> None:
        player_id = str(interaction.user.id)
        stake = [food, materials, energy, research]
        try:
            estimate = service.estimate_rewards(
                venture_type, stake, include_card=use_card, player_id=player_id
            )
        except (VentureError, ValueError) as exc:
            await _reject(interaction, exc)
            return
        ok, reason = service.can_start(player_id, venture_type, stake)
        lines = [
            f"Venture type {venture_type}: {_format_duration(int(estimate['duration']))}, "
            f"bonus +{int(estimate['bonus_bps']) / 100:.2f}%"
        ]
        for outcome, tier in estimate["tiers"].items():
            lines.append(
                f"- {outcome.replace('_', ' ')} ({tier['probability_bps'] / 100:.2f}%): "
                f"{_format_vector(tier['rewards'])}"
            )
        lines.append(f"Expected return: {estimate['expected_rewards']}")
        lines.append("Ready to launch." if ok else f"Cannot launch yet: {reason}")
        await interaction.response.send_message(_format_message(lines), ephemeral=True)

    @app_commands.command(name="venture_card_attach", description="Attach a card to a venture slot")
    @track_command
    @app_commands.describe(
        venture_type="Venture type number",
        collection_id="Card collection",
        token_id="Card token",
    )
    async def venture_card_attach(
        interaction: discord.Interaction,
        venture_type: int,
        collection_id: str,
        token_id: str,
    ) -> None:
        player_id = str(interaction.user.id)
        try:
            card = service.attach_card(player_id, venture_type, collection_id, token_id)
        except VentureError as exc:
            await _reject(interaction, exc)
            return
        await interaction.response.send_message(
            f"Attached {card.collection_id}#{card.token_id} to venture type {venture_type} "
            f"(+{card.success_boost_bps / 100:.2f}% success, "
            f"+{card.reward_boost_bps / 100:.2f}% rewards).",
            ephemeral=True,
        )

    @app_commands.command(name="venture_card_detach", description="Detach a card from a venture slot")
    @track_command
    @app_commands.describe(venture_type="Venture type number")
    async def venture_card_detach(interaction: discord.Interaction, venture_type: int) -> None:
        player_id = str(interaction.user.id)
        try:
            card = service.detach_card(player_id, venture_type)
        except VentureError as exc:
            await _reject(interaction, exc)
            return
        await interaction.response.send_message(
            f"Detached {card.collection_id}#{card.token_id} from venture type {venture_type}.",
            ephemeral=True,
        )

    # Admin command group
    venture_admin = app_commands.Group(
        name="venture_admin",
        description="Administrative commands for the venture economy",
        default_permissions=discord.Permissions(administrator=True),
    )

    @venture_admin.command(name="toggle", description="Enable or disable new ventures")
    @track_command
    @app_commands.describe(enabled="Whether new ventures may start")
    async def admin_toggle(interaction: discord.Interaction, enabled: bool) -> None:
        actor = str(interaction.user.display_name)
        service.set_enabled(enabled, actor=actor)
        message = "Ventures are now open." if enabled else "Ventures are paused."
        await interaction.response.send_message(message, ephemeral=True)
        await _post_to_channel(bot, router.ventures, message, purpose="admin action")

    @venture_admin.command(name="set_policy", description="Update a global venture policy field")
    @track_command
    @app_commands.describe(field="Policy field name", value="New value")
    async def admin_set_policy(interaction: discord.Interaction, field: str, value: str) -> None:
        actor = str(interaction.user.display_name)
        try:
            service.set_policy(actor=actor, **{field: _parse_setting_value(value)})
        except VentureError as exc:
            await _reject(interaction, exc)
            return
        await interaction.response.send_message(f"Policy {field} set to {value}.", ephemeral=True)
        await _flush_admin_notifications()

    @venture_admin.command(name="set_type", description="Update one field of a venture type")
    @track_command
    @app_commands.describe(
        venture_type="Venture type number",
        field="Config field name",
        value="New value (lists as [a, b, c, d])",
    )
    async def admin_set_type(
        interaction: discord.Interaction,
        venture_type: int,
        field: str,
        value: str,
    ) -> None:
        actor = str(interaction.user.display_name)
        try:
            service.update_type_config(
                venture_type, actor=actor, **{field: _parse_setting_value(value)}
            )
        except VentureError as exc:
            await _reject(interaction, exc)
            return
        await interaction.response.send_message(
            f"Venture type {venture_type} {field} set to {value}.", ephemeral=True
        )

    @venture_admin.command(name="grant", description="Grant resources to a player")
    @track_command
    @app_commands.describe(
        player_id="Discord user id",
        kind="food, materials, energy or research",
        amount="Amount to mint",
    )
    async def admin_grant(
        interaction: discord.Interaction,
        player_id: str,
        kind: str,
        amount: int,
    ) -> None:
        actor = str(interaction.user.display_name)
        try:
            balance = service.grant_resources(player_id, kind, amount, actor=actor)
        except (VentureError, ValueError) as exc:
            await _reject(interaction, exc)
            return
        await interaction.response.send_message(
            f"Granted {amount} {kind} to {player_id} (balance {balance}).", ephemeral=True
        )

    @venture_admin.command(name="summary", description="Show global venture statistics")
    @track_command
    async def admin_summary(interaction: discord.Interaction) -> None:
        totals = service.global_statistics()
        policy = service.get_policy()
        lines = [
            f"System {'enabled' if policy.enabled else 'disabled'}",
            (
                f"Started {totals.total_started}, completed {totals.total_completed}, "
                f"abandoned {totals.total_failed}, expired {totals.total_expired}, "
                f"active {totals.active}"
            ),
            f"Staked: {_format_vector(totals.total_staked)}",
            f"Rewarded: {_format_vector(totals.total_rewarded)}",
            f"Burned: {_format_vector(totals.total_burned)}",
            f"Fees collected: {totals.total_fees}",
        ]
        await interaction.response.send_message(_format_message(lines), ephemeral=True)
        await _flush_admin_notifications()

    bot.tree.add_command(venture_start)
    bot.tree.add_command(venture_claim)
    bot.tree.add_command(venture_abandon)
    bot.tree.add_command(venture_status)
    bot.tree.add_command(venture_estimate)
    bot.tree.add_command(venture_card_attach)
    bot.tree.add_command(venture_card_detach)
    bot.tree.add_command(venture_admin)
    return bot


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    token = os.environ.get("DISCORD_TOKEN")
    if not token:
        raise RuntimeError("DISCORD_TOKEN environment variable must be set")
    bot = build_bot(DEFAULT_STATE_DB)
    bot.run(token)


__all__ = ["ChannelRouter", "build_bot", "main"]
