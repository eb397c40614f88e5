"""
Identifier generation

Purchase orders get random UUIDs. A seeded factory makes a simulator run
fully reproducible (same seed = same order ids), which the backfill tests
depend on. Inventory snapshots carry a derived id built from their natural key.
"""

import random
import uuid
from datetime import datetime
from typing import Protocol

from erp_relay.kernel.time import to_iso


class IdFactory(Protocol):
    """Protocol for ID generation strategies"""

    def generate(self) -> str:
        """Generate a new unique ID"""
        ...


def generate_id() -> str:
    return str(uuid.uuid4())


class DefaultIdFactory:
    """Random UUID4 ids"""

    def generate(self) -> str:
        return generate_id()


class SeededIdFactory:
    """
    Deterministic UUID4-shaped ids from a private random stream

    Args:
        seed: Seed for the id stream (kept separate from the simulation's
              own RNG so adding an order does not shift quantities)
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def generate(self) -> str:
        return str(uuid.UUID(int=self._rng.getrandbits(128), version=4))


def snapshot_id(item_id: str, as_of: datetime) -> str:
    """Derived identifier of an inventory readout: inv_<item>_<as_of>"""
    return f"inv_{item_id}_{to_iso(as_of)}"

