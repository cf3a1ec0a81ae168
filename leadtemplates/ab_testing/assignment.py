"""
Sticky, weighted assignment of leads to experiment variants.
"""

import hashlib
import random
from threading import Lock
from typing import Dict, Optional, Sequence

from leadtemplates.ab_testing.variant_generator import ExperimentVariant
from leadtemplates.utils.logging import get_logger


class VariantAssigner:
    """
    Assigns each lead to one variant per test and remembers the choice.

    Variants are drawn in proportion to their ``weight`` (a zero weight counts
    as 1). Without an ``rng`` the draw comes from a hash of the lead and test
    ids, so the same lead lands on the same variant across processes; with one,
    the draw comes from ``rng.random()``.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng
        self._assignments: Dict[str, Dict[str, str]] = {}
        self._lock = Lock()
        self.logger = get_logger(f"{__name__}.VariantAssigner")

    def _draw(self, test_id: str, lead_id: str) -> float:
        if self.rng is not None:
            return self.rng.random()
        hash_input = f"{lead_id}:{test_id}".encode()
        hash_value = int(hashlib.md5(hash_input, usedforsecurity=False).hexdigest(), 16)
        return (hash_value % 10000) / 10000.0

    def _pick(self, test_id: str, lead_id: str, variants: Sequence[ExperimentVariant]) -> str:
        weights = [variant.weight or 1 for variant in variants]
        point = self._draw(test_id, lead_id) * sum(weights)
        cumulative = 0
        for variant, weight in zip(variants, weights):
            cumulative += weight
            if point < cumulative:
                return variant.id
        return variants[0].id

    def assign(self, test_id: str, lead_id: str, variants: Sequence[ExperimentVariant]) -> str:
        """
        Return the variant id for ``lead_id``, choosing one on first sight.

        Raises:
            ValueError: if ``variants`` is empty
        """
        if not variants:
            raise ValueError(f"Test {test_id} has no variants to assign")

        with self._lock:
            assigned = self._assignments.setdefault(test_id, {})
            if lead_id in assigned:
                return assigned[lead_id]
            variant_id = self._pick(test_id, lead_id, variants)
            assigned[lead_id] = variant_id

        self.logger.debug(
            f"Assigned lead {lead_id} to variant {variant_id} in test {test_id}",
            extra={"test_id": test_id, "variant_id": variant_id},
        )
        return variant_id

    def assignment(self, test_id: str, lead_id: str) -> Optional[str]:
        return self._assignments.get(test_id, {}).get(lead_id)

    def assignments(self, test_id: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._assignments.get(test_id, {}))
