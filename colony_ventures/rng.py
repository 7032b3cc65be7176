"""Deterministic random utilities."""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass

_MASK = 0xFFFFFFFF


def derive_seed(beacon: int, timestamp: int, owner: str, counter: int) -> int:
    """Fold a beacon value, time, owner and counter into a 32-bit venture seed.

    The same four inputs always produce the same seed so tests can pin
    outcomes by supplying a fixed beacon.
    """

    material = f"{beacon & _MASK}:{int(timestamp)}:{owner}:{int(counter)}".encode("utf-8")
    digest = hashlib.sha256(material).digest()
    return int.from_bytes(digest[:4], "big")


def derive_venture_id(owner: str, timestamp: int, counter: int) -> str:
    material = f"{owner}:{int(timestamp)}:{int(counter)}".encode("utf-8")
    return hashlib.sha256(material).hexdigest()[:16]


@dataclass
class BeaconSequence:
    """Deterministic beacon stream built from a campaign seed and counter."""

    campaign_seed: int
    counter: int = 0

    def next_value(self) -> int:
        value = (self.campaign_seed ^ (self.counter * 0x9E3779B9)) & _MASK
        self.counter += 1
        return value

    def __call__(self) -> int:
        return self.next_value()


class DeterministicRNG:
    """Wraps :mod:`random` with deterministic replay support."""

    def __init__(self, seed: int) -> None:
        self._seed = seed & _MASK
        # nosec B311 - deterministic pseudo-RNG acceptable for game mechanics
        self._random = random.Random(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def randint(self, a: int, b: int) -> int:
        return self._random.randint(a, b)

    def roll_bps(self) -> int:
        """Roll a basis-point value in ``[0, 10000)``."""

        return self._random.randrange(0, 10_000)


__all__ = ["BeaconSequence", "DeterministicRNG", "derive_seed", "derive_venture_id"]
