"""Fee collection by transfer or burn."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict

from .ledger import ResourceLedger
from .models import ResourceKind

logger = logging.getLogger(__name__)


class FeeTreasury:
    """Collects fees from payers and tracks totals per label."""

    def __init__(self, ledger: ResourceLedger) -> None:
        self._ledger = ledger
        self._collected: Dict[str, int] = defaultdict(int)
        self._burned: Dict[str, int] = defaultdict(int)

    def collect_fee(
        self,
        token: ResourceKind,
        payer: str,
        beneficiary: str,
        amount: int,
        label: str,
    ) -> int:
        """Transfer ``amount`` of ``token`` from payer to beneficiary."""

        if amount <= 0:
            return 0
        token = ResourceKind.parse(token)
        self._ledger.debit(payer, token, amount)
        self._ledger.credit(beneficiary, token, amount)
        self._collected[label] += amount
        logger.info(
            "Collected %s %s fee (%s) from %s for %s",
            amount,
            token.name.lower(),
            label,
            payer,
            beneficiary,
        )
        return amount

    def collect_and_burn_fee(
        self,
        token: ResourceKind,
        payer: str,
        beneficiary: str,
        amount: int,
        label: str,
    ) -> int:
        """Debit ``amount`` from the payer and remove it from global supply.

        ``beneficiary`` is recorded for auditing only; nothing is credited.
        """

        if amount <= 0:
            return 0
        token = ResourceKind.parse(token)
        self._ledger.debit(payer, token, amount)
        self._ledger.decrement_global_supply(token, amount)
        self._burned[label] += amount
        logger.info(
            "Burned %s %s fee (%s) from %s on behalf of %s",
            amount,
            token.name.lower(),
            label,
            payer,
            beneficiary,
        )
        return amount

    def summary(self) -> Dict[str, Dict[str, int]]:
        return {"collected": dict(self._collected), "burned": dict(self._burned)}


__all__ = ["FeeTreasury"]
