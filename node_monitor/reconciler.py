"""
Node Monitor - Reconciler.

============================================================
RESPONSIBILITY
============================================================
Cross-validates a pushed block against an independent
fetch-by-number on the secondary (HTTP) channel.

- Missing in secondary    -> ERROR log, block still accepted
- Hash mismatch           -> ERROR log, block still accepted
- Hashes match            -> accepted

Discrepancies are monitoring signals only. Staleness, not
byte-level agreement between channels, is the health signal,
so reconciliation never blocks ingestion.

============================================================
"""

from dataclasses import dataclass
from typing import Optional
import logging

from node_monitor.exceptions import ProviderError, ReconciliationDiscrepancy
from node_monitor.models import BlockRecord
from node_monitor.providers.base import BlockProvider


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of reconciling one candidate."""
    block: BlockRecord
    discrepancy: Optional[ReconciliationDiscrepancy] = None

    @property
    def confirmed(self) -> bool:
        return self.discrepancy is None


class Reconciler:
    """Checks pushed candidates against a secondary provider."""

    def __init__(self, secondary: BlockProvider):
        self._secondary = secondary
        self.checked = 0
        self.missing = 0
        self.mismatches = 0

    @property
    def secondary(self) -> BlockProvider:
        return self._secondary

    async def reconcile(self, candidate: BlockRecord) -> ReconciliationResult:
        """
        Reconcile a candidate block.

        Args:
            candidate: Block received from the primary (push) channel

        Returns:
            ReconciliationResult whose block is always the candidate
        """
        self.checked += 1

        try:
            confirmation = await self._secondary.fetch_by_number(candidate.number)
            lookup_error: Optional[ProviderError] = None
        except ProviderError as e:
            confirmation = None
            lookup_error = e

        if confirmation is None:
            self.missing += 1
            discrepancy = ReconciliationDiscrepancy(
                "block not found in secondary source",
                kind=ReconciliationDiscrepancy.MISSING,
                block_number=candidate.number,
                primary_hash=candidate.hash,
                cause=lookup_error,
            )
            logger.error(
                f"Block not found in secondary source [{self._secondary.name}]: "
                f"number={candidate.number} hash={candidate.hash}"
                + (f" error={lookup_error}" if lookup_error else "")
            )
            return ReconciliationResult(block=candidate, discrepancy=discrepancy)

        if confirmation.hash != candidate.hash:
            self.mismatches += 1
            discrepancy = ReconciliationDiscrepancy(
                "hash mismatch between sources",
                kind=ReconciliationDiscrepancy.HASH_MISMATCH,
                block_number=candidate.number,
                primary_hash=candidate.hash,
                secondary_hash=confirmation.hash,
            )
            logger.error(
                f"Hash mismatch between sources: number={candidate.number} "
                f"primary={candidate.hash} {self._secondary.name}={confirmation.hash}"
            )
            return ReconciliationResult(block=candidate, discrepancy=discrepancy)

        return ReconciliationResult(block=candidate)

    def get_stats(self) -> dict:
        return {
            "checked": self.checked,
            "missing": self.missing,
            "mismatches": self.mismatches,
        }
