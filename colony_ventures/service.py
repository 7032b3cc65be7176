"""High-level venture engine orchestrating escrow, resolution and payouts."""
from __future__ import annotations

import logging
import time
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .bonuses import NO_CARD_BONUS, CardBonuses, ColonyEffects, ColonyRegistry
from .cards import OwnershipProbe, StaticOwnershipProbe, VentureCardRegistry
from .config import Settings, get_settings
from .errors import (
    InsufficientResources,
    InvalidConfiguration,
    InvalidVentureType,
    NoStakeProvided,
    NotVentureOwner,
    ReentrantCallError,
    StakeOutOfBounds,
    TooManyActiveVentures,
    VentureAlreadyClaimed,
    VentureCooldownActive,
    VentureError,
    VentureNotFound,
    VentureNotReady,
    VentureSystemDisabled,
    VentureTypeDisabled,
)
from .ledger import ResourceLedger, SqliteResourceLedger
from .models import (
    BPS_DENOMINATOR,
    RESOURCE_COUNT,
    CardCollection,
    ClaimResult,
    Event,
    ResourceKind,
    UserProgressionStats,
    Venture,
    VentureAttachedCard,
    VentureOutcome,
    VenturePhase,
    VenturePolicy,
    VentureStatistics,
    VentureTypeConfig,
    empty_vector,
    normalize_vector,
)
from .outcomes import (
    compute_abandon,
    compute_bonus_multiplier,
    compute_rewards,
    determine_outcome,
    estimate_outcomes,
    fee_for,
)
from .rng import BeaconSequence, derive_seed, derive_venture_id
from .state import VentureState
from .telemetry import TelemetryCollector, get_telemetry
from .treasury import FeeTreasury

logger = logging.getLogger(__name__)

Notifier = Callable[[Event], None]

_TYPE_BPS_FIELDS = (
    "success_rate_bps",
    "critical_success_bps",
    "critical_failure_bps",
    "partial_return_bps",
    "failure_loss_bps",
)
_POLICY_BPS_FIELDS = (
    "streak_bonus_bps",
    "colony_bonus_bps",
    "max_success_rate_bps",
    "partial_success_share_bps",
    "entry_fee_bps",
    "claim_fee_bps",
)


class VentureService:
    """Coordinates the venture lifecycle on top of persistent state."""

    def __init__(
        self,
        db_path: Path,
        settings: Settings | None = None,
        *,
        ledger: ResourceLedger | None = None,
        treasury: FeeTreasury | None = None,
        colonies: ColonyRegistry | None = None,
        ownership_probe: OwnershipProbe | None = None,
        clock: Callable[[], int] | None = None,
        beacon: Callable[[], int] | None = None,
        notifiers: Sequence[Notifier] = (),
        telemetry: TelemetryCollector | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.state = VentureState(db_path, self.settings)
        self.ledger = ledger or SqliteResourceLedger(self.state)
        self.treasury = treasury or FeeTreasury(self.ledger)
        self.colonies = colonies or ColonyRegistry.from_entries(self.settings.colonies)
        self._clock = clock or (lambda: int(time.time()))
        self._last_time = 0
        self._beacon = beacon or BeaconSequence(self.settings.beacon_seed)
        self.cards = VentureCardRegistry(
            self.state,
            clock=self._now,
            ownership_probe=ownership_probe or StaticOwnershipProbe(self.settings.card_owners),
        )
        self._notifiers: List[Notifier] = list(notifiers)
        self._telemetry = telemetry or get_telemetry()
        self._busy = False
        self._admin_notifications: deque[str] = deque()

    @property
    def telemetry(self) -> TelemetryCollector:
        return self._telemetry

    # Plumbing ------------------------------------------------------------
    def _now(self) -> int:
        """Read the injected clock, never letting time run backwards."""

        current = int(self._clock())
        if current < self._last_time:
            logger.debug("Clock moved backwards (%s < %s); clamping", current, self._last_time)
            current = self._last_time
        self._last_time = current
        return current

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if self._busy:
            raise ReentrantCallError(f"{operation} called while another operation is running")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def add_notifier(self, notifier: Notifier) -> None:
        self._notifiers.append(notifier)

    def _emit(self, now: int, action: str, payload: Dict[str, object]) -> Event:
        event = Event(
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc),
            action=action,
            payload=payload,
        )
        self.state.append_event(event)
        for notifier in list(self._notifiers):
            try:
                notifier(event)
            except Exception:
                logger.debug("Notifier failed for %s", action, exc_info=True)
        return event

    def _queue_admin_notification(self, message: str) -> None:
        logger.warning(message)
        self._admin_notifications.append(message)

    def drain_admin_notifications(self) -> List[str]:
        notes = list(self._admin_notifications)
        self._admin_notifications.clear()
        return notes

    def _track_venture(
        self,
        action: str,
        venture: Venture,
        value: float,
        *,
        outcome: Optional[str] = None,
        details: Optional[Dict[str, object]] = None,
    ) -> None:
        try:
            self._telemetry.track_venture(
                action,
                player_id=venture.owner,
                venture_type=venture.venture_type,
                value=value,
                outcome=outcome,
                details=details,
            )
        except Exception:  # pragma: no cover - telemetry is optional
            logger.debug("Failed to record %s telemetry", action, exc_info=True)

    def _track_flow(self, rewarded: List[int], burned: List[int], fee: int, fee_token: ResourceKind) -> None:
        try:
            for kind in ResourceKind:
                fees = fee if kind is fee_token else 0
                if rewarded[kind] or burned[kind] or fees:
                    self._telemetry.track_economy_flow(
                        kind.name.lower(),
                        rewarded=rewarded[kind],
                        burned=burned[kind],
                        fees=fees,
                    )
        except Exception:  # pragma: no cover - telemetry is optional
            logger.debug("Failed to record economy telemetry", exc_info=True)

    def _track_system(self, event: str, *, reason: Optional[str] = None) -> None:
        try:
            self._telemetry.track_system_event(event, source="venture_service", reason=reason)
        except Exception:  # pragma: no cover - telemetry is optional
            logger.debug("Failed to record system telemetry", exc_info=True)

    def _charge_fee(self, policy: VenturePolicy, payer: str, amount: int, label: str) -> int:
        if amount <= 0:
            return 0
        if policy.burn_fees:
            return self.treasury.collect_and_burn_fee(
                policy.fee_token, payer, policy.fee_beneficiary, amount, label
            )
        return self.treasury.collect_fee(
            policy.fee_token, payer, policy.fee_beneficiary, amount, label
        )

    # Bonus lookups -------------------------------------------------------
    def _colony_for(self, player_id: str) -> Optional[str]:
        try:
            return self.colonies.primary_colony(player_id)
        except Exception:
            logger.debug("Colony lookup failed for %s", player_id, exc_info=True)
            return None

    def _colony_effects(self, colony_id: Optional[str]) -> ColonyEffects:
        if not colony_id:
            return ColonyEffects()
        try:
            return self.colonies.get_colony_effects(colony_id)
        except Exception:
            logger.debug("Colony effects lookup failed for %s", colony_id, exc_info=True)
            return ColonyEffects()

    def _card_bonuses(self, player_id: str, venture_type: int) -> CardBonuses:
        try:
            return self.cards.get_card_bonuses(player_id, venture_type)
        except Exception:
            logger.debug(
                "Card bonus lookup failed for %s type %s", player_id, venture_type, exc_info=True
            )
            return NO_CARD_BONUS

    def _bonus_for(
        self,
        player_id: str,
        venture_type: int,
        policy: VenturePolicy,
        *,
        colony_id: Optional[str],
        include_card: bool = True,
    ) -> int:
        stats = self.state.get_player_stats(player_id)
        effects = self._colony_effects(colony_id)
        card = self._card_bonuses(player_id, venture_type) if include_card else NO_CARD_BONUS
        return compute_bonus_multiplier(
            stats.current_streak,
            policy,
            colony_bonus=effects.tech_bonus_present,
            card_success_boost_bps=card.success_boost_bps,
        )

    # Start ---------------------------------------------------------------
    def _resolve_type(self, venture_type: int, policy: VenturePolicy) -> VentureTypeConfig:
        if not 0 <= venture_type < policy.max_venture_types:
            raise InvalidVentureType(venture_type)
        config = self.state.get_type_config(venture_type)
        if config is None:
            raise InvalidVentureType(venture_type)
        return config

    def _check_start(
        self,
        player_id: str,
        venture_type: int,
        staked: List[int],
        now: int,
    ) -> Tuple[VenturePolicy, VentureTypeConfig, int]:
        policy = self.state.get_policy()
        if not policy.enabled:
            raise VentureSystemDisabled()
        config = self._resolve_type(venture_type, policy)
        if not config.enabled:
            raise VentureTypeDisabled(venture_type)

        active = len(self.state.active_venture_ids(player_id))
        if active >= policy.max_active_ventures:
            raise TooManyActiveVentures(active, policy.max_active_ventures)

        stats = self.state.get_player_stats(player_id)
        if stats.last_venture_time and config.cooldown_seconds:
            ready_at = stats.last_venture_time + config.cooldown_seconds
            if now < ready_at:
                raise VentureCooldownActive(venture_type, ready_at - now)

        for kind in ResourceKind:
            amount = staked[kind]
            if amount == 0:
                continue
            minimum = config.min_stake[kind]
            maximum = config.max_stake[kind]
            if amount < minimum or (maximum and amount > maximum):
                raise StakeOutOfBounds(kind.name.lower(), amount, minimum, maximum)
        if not any(staked):
            raise NoStakeProvided()

        entry_fee = fee_for(sum(staked), policy.entry_fee_bps)
        required = list(staked)
        required[policy.fee_token] += entry_fee
        for kind in ResourceKind:
            if required[kind] <= 0:
                continue
            available = self.ledger.get_balance(player_id, kind)
            if available < required[kind]:
                raise InsufficientResources(kind.name.lower(), required[kind], available)
        return policy, config, entry_fee

    def start_venture(
        self,
        player_id: str,
        venture_type: int,
        staked: Sequence[int],
    ) -> Venture:
        """Escrow ``staked`` and open a venture of ``venture_type``."""

        if not player_id:
            raise ValueError("Player id is required")
        vector = normalize_vector(list(staked))
        with self._exclusive("start_venture"):
            now = self._now()
            policy, config, entry_fee = self._check_start(player_id, venture_type, vector, now)

            for kind in ResourceKind:
                self.ledger.debit(player_id, kind, vector[kind])

            colony_id = self._colony_for(player_id)
            bonus = self._bonus_for(player_id, venture_type, policy, colony_id=colony_id)
            counter = self.state.next_counter("venture")
            try:
                beacon = int(self._beacon())
            except Exception:
                logger.debug("Beacon unavailable; falling back to settings seed", exc_info=True)
                beacon = self.settings.beacon_seed
            end_time = now + config.duration
            venture = Venture(
                venture_id=derive_venture_id(player_id, now, counter),
                owner=player_id,
                venture_type=venture_type,
                staked=vector,
                start_time=now,
                end_time=end_time,
                seed=derive_seed(beacon, now, player_id, counter),
                bonus_multiplier_bps=bonus,
                colony_id=colony_id,
                claim_deadline=(
                    end_time + policy.claim_window_seconds if policy.claim_window_seconds > 0 else 0
                ),
            )

            fee_paid = self._charge_fee(policy, player_id, entry_fee, "venture_entry")
            venture.fee_paid = fee_paid
            self.state.save_venture(venture)
            self.state.add_active_venture(player_id, venture.venture_id)

            stats = self.state.get_player_stats(player_id)
            stats.total_ventures += 1
            stats.last_venture_time = now
            stats.lifetime_staked += sum(vector)
            self.state.save_player_stats(player_id, stats)

            totals = self.state.get_statistics()
            totals.total_started += 1
            totals.active += 1
            totals.started_by_type[venture_type] = totals.started_by_type.get(venture_type, 0) + 1
            totals.total_staked = [a + b for a, b in zip(totals.total_staked, vector)]
            totals.total_fees += fee_paid
            self.state.save_statistics(totals)

            try:
                self.cards.lock_card(player_id, venture_type)
            except Exception:
                logger.debug("Card lock failed for %s type %s", player_id, venture_type, exc_info=True)

            logger.info(
                "%s started venture %s (type %s, stake %s, bonus %s bps)",
                player_id,
                venture.venture_id,
                venture_type,
                vector,
                bonus,
            )
            self._emit(
                now,
                "venture_started",
                {
                    "venture_id": venture.venture_id,
                    "player": player_id,
                    "venture_type": venture_type,
                    "staked": list(vector),
                    "end_time": end_time,
                    "claim_deadline": venture.claim_deadline,
                    "bonus_bps": bonus,
                    "fee": fee_paid,
                },
            )
            self._track_venture(
                "venture_started",
                venture,
                sum(vector),
                details={"bonus_bps": bonus, "fee": fee_paid},
            )
            return venture

    # Resolution ----------------------------------------------------------
    def _load_owned_active(self, player_id: str, venture_id: str) -> Venture:
        venture = self.state.get_venture(venture_id)
        if venture is None:
            raise VentureNotFound(venture_id)
        if venture.owner != player_id:
            raise NotVentureOwner(venture_id, player_id)
        if venture.phase is not VenturePhase.IN_PROGRESS:
            raise VentureAlreadyClaimed(venture_id, venture.phase.value)
        return venture

    def _release_card(self, venture: Venture) -> None:
        try:
            for other_id in self.state.active_venture_ids(venture.owner):
                other = self.state.get_venture(other_id)
                if other is not None and other.venture_type == venture.venture_type:
                    return
            self.cards.unlock_card(venture.owner, venture.venture_type)
        except Exception:
            logger.debug("Card unlock failed for %s", venture.venture_id, exc_info=True)

    def _finish(self, venture: Venture, now: int) -> None:
        venture.resolved_at = now
        self.state.save_venture(venture)
        self.state.remove_active_venture(venture.owner, venture.venture_id)
        self._release_card(venture)

    def claim_venture(self, player_id: str, venture_id: str) -> ClaimResult:
        """Resolve a matured venture and pay out its rewards."""

        with self._exclusive("claim_venture"):
            now = self._now()
            venture = self._load_owned_active(player_id, venture_id)
            if now < venture.end_time:
                raise VentureNotReady(venture_id, venture.time_remaining(now))
            if venture.deadline_passed(now):
                return self._expire(venture, now)
            return self._settle(venture, now)

    def _expire(self, venture: Venture, now: int) -> ClaimResult:
        burned = list(venture.staked)
        for kind in ResourceKind:
            self.ledger.decrement_global_supply(kind, burned[kind])

        venture.phase = VenturePhase.EXPIRED
        venture.outcome = VentureOutcome.CRITICAL_FAILURE
        venture.rewards = empty_vector()
        venture.burned = burned
        self._finish(venture, now)

        stats = self.state.get_player_stats(venture.owner)
        stats.record_failure()
        stats.lifetime_lost += sum(burned)
        self.state.save_player_stats(venture.owner, stats)

        totals = self.state.get_statistics()
        totals.total_expired += 1
        totals.active = max(0, totals.active - 1)
        totals.total_burned = [a + b for a, b in zip(totals.total_burned, burned)]
        self.state.save_statistics(totals)

        logger.info(
            "Venture %s expired unclaimed %s seconds past its deadline",
            venture.venture_id,
            now - venture.claim_deadline,
        )
        self._emit(
            now,
            "venture_expired",
            {
                "venture_id": venture.venture_id,
                "player": venture.owner,
                "venture_type": venture.venture_type,
                "burned": burned,
                "claim_deadline": venture.claim_deadline,
            },
        )
        self._track_venture(
            "venture_expired", venture, sum(burned), outcome=venture.outcome.value
        )
        self._track_flow(empty_vector(), burned, 0, ResourceKind.ENERGY)
        return ClaimResult(
            venture=venture,
            outcome=venture.outcome,
            rewards=empty_vector(),
            burned=burned,
            fee=0,
            expired=True,
        )

    def _settle(self, venture: Venture, now: int) -> ClaimResult:
        policy = self.state.get_policy()
        config = self.state.get_type_config(venture.venture_type)
        if config is None:
            raise InvalidVentureType(venture.venture_type)
        outcome, roll = determine_outcome(
            venture.seed, config, policy, venture.bonus_multiplier_bps
        )
        reward_boost = 0
        if outcome.is_success_tier:
            reward_boost = self._card_bonuses(venture.owner, venture.venture_type).reward_boost_bps
        rewards, burned = compute_rewards(
            venture.staked, outcome, config, reward_boost_bps=reward_boost
        )

        clamped: List[ResourceKind] = []
        for kind in ResourceKind:
            generated = rewards[kind] - venture.staked[kind]
            if generated > 0 and not self.ledger.check_supply_cap(kind, generated):
                rewards[kind] = venture.staked[kind]
                clamped.append(kind)

        claim_fee = fee_for(sum(rewards), policy.claim_fee_bps)
        if claim_fee:
            token = policy.fee_token
            available = self.ledger.get_balance(venture.owner, token) + rewards[token]
            if available < claim_fee:
                raise InsufficientResources(token.name.lower(), claim_fee, available)

        for kind in ResourceKind:
            self.ledger.credit(venture.owner, kind, rewards[kind])
            generated = rewards[kind] - venture.staked[kind]
            if generated > 0:
                self.ledger.increment_global_supply(kind, generated)
            self.ledger.decrement_global_supply(kind, burned[kind])
        fee_paid = self._charge_fee(policy, venture.owner, claim_fee, "venture_claim")

        venture.phase = VenturePhase.COMPLETED
        venture.outcome = outcome
        venture.rewards = rewards
        venture.burned = burned
        venture.fee_paid += fee_paid
        self._finish(venture, now)

        stats = self.state.get_player_stats(venture.owner)
        if outcome.is_success_tier:
            stats.record_success()
        else:
            stats.record_failure()
        stats.lifetime_won += sum(rewards)
        stats.lifetime_lost += sum(burned)
        self.state.save_player_stats(venture.owner, stats)

        totals = self.state.get_statistics()
        totals.total_completed += 1
        totals.active = max(0, totals.active - 1)
        totals.total_rewarded = [a + b for a, b in zip(totals.total_rewarded, rewards)]
        totals.total_burned = [a + b for a, b in zip(totals.total_burned, burned)]
        totals.total_fees += fee_paid
        self.state.save_statistics(totals)

        for kind in clamped:
            message = (
                f"Supply cap reached for {kind.name.lower()}; venture {venture.venture_id} "
                "reward clamped to the original stake"
            )
            self._queue_admin_notification(message)
            self._track_system("supply_clamp", reason=message)

        logger.info(
            "%s claimed venture %s: %s (roll %s) rewards %s burned %s",
            venture.owner,
            venture.venture_id,
            outcome.value,
            roll,
            rewards,
            burned,
        )
        self._emit(
            now,
            "venture_claimed",
            {
                "venture_id": venture.venture_id,
                "player": venture.owner,
                "venture_type": venture.venture_type,
                "outcome": outcome.value,
                "roll": roll,
                "rewards": rewards,
                "burned": burned,
                "fee": fee_paid,
                "clamped": [kind.name.lower() for kind in clamped],
            },
        )
        self._track_venture(
            "venture_claimed",
            venture,
            sum(rewards),
            outcome=outcome.value,
            details={"roll": roll, "fee": fee_paid, "clamped": len(clamped)},
        )
        self._track_flow(rewards, burned, fee_paid, policy.fee_token)
        return ClaimResult(
            venture=venture,
            outcome=outcome,
            rewards=rewards,
            burned=burned,
            fee=fee_paid,
            clamped_kinds=clamped,
        )

    def abandon_venture(self, player_id: str, venture_id: str) -> Venture:
        """Exit an in-flight venture early for a time-scaled partial refund."""

        with self._exclusive("abandon_venture"):
            now = self._now()
            venture = self._load_owned_active(player_id, venture_id)
            if venture.deadline_passed(now):
                return self._expire(venture, now).venture
            duration = venture.end_time - venture.start_time
            returned, burned = compute_abandon(
                venture.staked, now - venture.start_time, duration
            )
            for kind in ResourceKind:
                self.ledger.credit(player_id, kind, returned[kind])
                self.ledger.decrement_global_supply(kind, burned[kind])

            venture.phase = VenturePhase.FAILED
            venture.outcome = VentureOutcome.FAILURE
            venture.rewards = returned
            venture.burned = burned
            self._finish(venture, now)

            stats = self.state.get_player_stats(player_id)
            stats.record_failure()
            stats.lifetime_lost += sum(burned)
            self.state.save_player_stats(player_id, stats)

            totals = self.state.get_statistics()
            totals.total_failed += 1
            totals.active = max(0, totals.active - 1)
            totals.total_burned = [a + b for a, b in zip(totals.total_burned, burned)]
            self.state.save_statistics(totals)

            logger.info(
                "%s abandoned venture %s: returned %s burned %s",
                player_id,
                venture_id,
                returned,
                burned,
            )
            self._emit(
                now,
                "venture_abandoned",
                {
                    "venture_id": venture_id,
                    "player": player_id,
                    "venture_type": venture.venture_type,
                    "returned": returned,
                    "burned": burned,
                },
            )
            self._track_venture("venture_abandoned", venture, sum(burned))
            self._track_flow(empty_vector(), burned, 0, ResourceKind.ENERGY)
            return venture

    # Cards ---------------------------------------------------------------
    def attach_card(
        self,
        player_id: str,
        venture_type: int,
        collection_id: str,
        token_id: str,
    ) -> VentureAttachedCard:
        with self._exclusive("attach_card"):
            card = self.cards.attach_card(player_id, venture_type, collection_id, token_id)
            self._emit(
                card.attached_at,
                "venture_card_attached",
                {
                    "player": player_id,
                    "venture_type": venture_type,
                    "collection_id": collection_id,
                    "token_id": card.token_id,
                },
            )
            return card

    def detach_card(self, player_id: str, venture_type: int) -> VentureAttachedCard:
        with self._exclusive("detach_card"):
            card = self.cards.detach_card(player_id, venture_type)
            self._emit(
                self._now(),
                "venture_card_detached",
                {
                    "player": player_id,
                    "venture_type": venture_type,
                    "collection_id": card.collection_id,
                    "token_id": card.token_id,
                },
            )
            return card

    # Views ---------------------------------------------------------------
    def get_venture(self, venture_id: str) -> Venture:
        venture = self.state.get_venture(venture_id)
        if venture is None:
            raise VentureNotFound(venture_id)
        return venture

    def active_ventures(self, player_id: str) -> List[Venture]:
        ventures = []
        for venture_id in self.state.active_venture_ids(player_id):
            venture = self.state.get_venture(venture_id)
            if venture is not None:
                ventures.append(venture)
        return ventures

    def venture_history(self, player_id: str, limit: int = 20) -> List[Venture]:
        return self.state.list_ventures(owner=player_id, limit=limit)

    def get_type_config(self, venture_type: int) -> VentureTypeConfig:
        config = self.state.get_type_config(venture_type)
        if config is None:
            raise InvalidVentureType(venture_type)
        return config

    def configured_types(self) -> Dict[int, VentureTypeConfig]:
        types: Dict[int, VentureTypeConfig] = {}
        for venture_type in self.state.configured_types():
            config = self.state.get_type_config(venture_type)
            if config is not None:
                types[venture_type] = config
        return types

    def get_policy(self) -> VenturePolicy:
        return self.state.get_policy()

    def get_user_stats(self, player_id: str) -> UserProgressionStats:
        return self.state.get_player_stats(player_id)

    def global_statistics(self) -> VentureStatistics:
        return self.state.get_statistics()

    def balances(self, player_id: str) -> List[int]:
        return [self.ledger.get_balance(player_id, kind) for kind in ResourceKind]

    def estimate_rewards(
        self,
        venture_type: int,
        staked: Sequence[int],
        *,
        include_card: bool = False,
        player_id: Optional[str] = None,
    ) -> Dict[str, object]:
        """Preview every outcome tier for a stake without touching state.

        With ``player_id`` the player's current streak and colony bonus are
        folded in; ``include_card`` adds the card attached to that slot.
        """

        policy = self.state.get_policy()
        config = self._resolve_type(venture_type, policy)
        vector = normalize_vector(list(staked))
        bonus = 0
        reward_boost = 0
        if player_id:
            bonus = self._bonus_for(
                player_id,
                venture_type,
                policy,
                colony_id=self._colony_for(player_id),
                include_card=include_card,
            )
            if include_card:
                reward_boost = self._card_bonuses(player_id, venture_type).reward_boost_bps
        estimate = estimate_outcomes(
            vector, config, policy, bonus_bps=bonus, reward_boost_bps=reward_boost
        )
        estimate["venture_type"] = venture_type
        estimate["duration"] = config.duration
        estimate["entry_fee"] = fee_for(sum(vector), policy.entry_fee_bps)
        return estimate

    def can_start(
        self, player_id: str, venture_type: int, staked: Sequence[int]
    ) -> Tuple[bool, Optional[str]]:
        try:
            vector = normalize_vector(list(staked))
            self._check_start(player_id, venture_type, vector, self._now())
        except (VentureError, ValueError) as exc:
            return False, str(exc)
        return True, None

    def export_events(self, limit: Optional[int] = None) -> List[Event]:
        return self.state.export_events(limit)

    # Administration ------------------------------------------------------
    def set_enabled(self, enabled: bool, *, actor: str = "admin") -> VenturePolicy:
        return self.set_policy(actor=actor, enabled=enabled)

    @staticmethod
    def _validate_type_config(config: VentureTypeConfig) -> None:
        for name in _TYPE_BPS_FIELDS:
            value = getattr(config, name)
            if not 0 <= value <= BPS_DENOMINATOR:
                raise InvalidConfiguration(f"{name} must be between 0 and 10000")
        if config.reward_multiplier_bps < 0:
            raise InvalidConfiguration("reward_multiplier_bps cannot be negative")
        if config.critical_multiplier_bps < BPS_DENOMINATOR:
            raise InvalidConfiguration("critical_multiplier_bps must be at least 10000")
        if config.duration <= 0:
            raise InvalidConfiguration("duration must be positive")
        if config.cooldown_seconds < 0:
            raise InvalidConfiguration("cooldown_seconds cannot be negative")
        for index in range(RESOURCE_COUNT):
            maximum = config.max_stake[index]
            if maximum and config.min_stake[index] > maximum:
                raise InvalidConfiguration(
                    f"min_stake exceeds max_stake for {ResourceKind(index).name.lower()}"
                )

    @staticmethod
    def _validate_policy(policy: VenturePolicy) -> None:
        for name in _POLICY_BPS_FIELDS:
            value = getattr(policy, name)
            if not 0 <= value <= BPS_DENOMINATOR:
                raise InvalidConfiguration(f"{name} must be between 0 and 10000")
        if policy.max_venture_types <= 0:
            raise InvalidConfiguration("max_venture_types must be positive")
        if policy.max_active_ventures <= 0:
            raise InvalidConfiguration("max_active_ventures must be positive")
        for name in (
            "claim_window_seconds",
            "max_streak_bonus_count",
            "card_attach_cooldown_seconds",
            "card_detach_cooldown_seconds",
        ):
            if getattr(policy, name) < 0:
                raise InvalidConfiguration(f"{name} cannot be negative")
        if not policy.fee_beneficiary and not policy.burn_fees:
            raise InvalidConfiguration("fee_beneficiary is required unless fees are burned")

    def set_type_config(
        self, venture_type: int, config: VentureTypeConfig, *, actor: str = "admin"
    ) -> VentureTypeConfig:
        with self._exclusive("set_type_config"):
            policy = self.state.get_policy()
            if not 0 <= venture_type < policy.max_venture_types:
                raise InvalidVentureType(venture_type)
            self._validate_type_config(config)
            self.state.save_type_config(venture_type, config)
            logger.info("%s updated venture type %s", actor, venture_type)
            self._emit(
                self._now(),
                "venture_type_updated",
                {"actor": actor, "venture_type": venture_type, "config": config.to_dict()},
            )
            self._track_system("venture_type_updated", reason=f"type {venture_type}")
            return config

    def update_type_config(
        self, venture_type: int, *, actor: str = "admin", **fields: object
    ) -> VentureTypeConfig:
        current = self.state.get_type_config(venture_type) or VentureTypeConfig()
        data = current.to_dict()
        unknown = sorted(set(fields) - set(data))
        if unknown:
            raise InvalidConfiguration(f"Unknown venture type fields: {', '.join(unknown)}")
        data.update(fields)
        try:
            config = VentureTypeConfig.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise InvalidConfiguration(str(exc)) from exc
        return self.set_type_config(venture_type, config, actor=actor)

    def set_policy(self, *, actor: str = "admin", **fields: object) -> VenturePolicy:
        with self._exclusive("set_policy"):
            data = self.state.get_policy().to_dict()
            unknown = sorted(set(fields) - set(data))
            if unknown:
                raise InvalidConfiguration(f"Unknown policy fields: {', '.join(unknown)}")
            data.update(fields)
            try:
                policy = VenturePolicy.from_dict(data)
            except (TypeError, ValueError) as exc:
                raise InvalidConfiguration(str(exc)) from exc
            self._validate_policy(policy)
            self.state.save_policy(policy)
            logger.info("%s updated venture policy: %s", actor, sorted(fields))
            self._emit(
                self._now(),
                "venture_policy_updated",
                {"actor": actor, "fields": {key: data[key] for key in sorted(fields)}},
            )
            self._track_system("venture_policy_updated", reason=", ".join(sorted(fields)))
            return policy

    def register_card_collection(
        self, collection: CardCollection, *, actor: str = "admin"
    ) -> CardCollection:
        with self._exclusive("register_card_collection"):
            self.cards.register_collection(collection)
            self._emit(
                self._now(),
                "card_collection_registered",
                {"actor": actor, "collection": dict(collection.__dict__)},
            )
            return collection

    def set_card_collection_enabled(
        self, collection_id: str, enabled: bool, *, actor: str = "admin"
    ) -> CardCollection:
        with self._exclusive("set_card_collection_enabled"):
            collection = self.cards.set_collection_enabled(collection_id, enabled)
            self._emit(
                self._now(),
                "card_collection_toggled",
                {"actor": actor, "collection_id": collection_id, "enabled": enabled},
            )
            return collection

    def set_supply_cap(self, kind: ResourceKind, cap: int, *, actor: str = "admin") -> None:
        with self._exclusive("set_supply_cap"):
            kind = ResourceKind.parse(kind)
            self.ledger.set_supply_cap(kind, cap)
            self._emit(
                self._now(),
                "supply_cap_updated",
                {"actor": actor, "kind": kind.name.lower(), "cap": int(cap)},
            )

    def grant_resources(
        self, player_id: str, kind: ResourceKind, amount: int, *, actor: str = "admin"
    ) -> int:
        """Mint new resources into a player's balance within the supply cap."""

        with self._exclusive("grant_resources"):
            kind = ResourceKind.parse(kind)
            self.ledger.mint(player_id, kind, amount)
            self._emit(
                self._now(),
                "resources_granted",
                {"actor": actor, "player": player_id, "kind": kind.name.lower(), "amount": amount},
            )
            return self.ledger.get_balance(player_id, kind)


__all__ = ["Notifier", "VentureService"]
