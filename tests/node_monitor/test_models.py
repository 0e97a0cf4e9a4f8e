"""
Tests for block records and RPC payload parsing.
"""

import pytest

from node_monitor.exceptions import ProviderError
from node_monitor.models import BlockRecord, HealthReason, HealthVerdict, parse_quantity

from conftest import rpc_block


class TestParseQuantity:
    """Tests for JSON-RPC quantity decoding."""

    def test_hex_string(self):
        assert parse_quantity("0x10", "number") == 16
        assert parse_quantity("0X1f", "number") == 31

    def test_decimal_string_and_int(self):
        assert parse_quantity("42", "number") == 42
        assert parse_quantity(42, "number") == 42

    @pytest.mark.parametrize("value", [None, True, -1, "0xzz", 1.5])
    def test_rejects_invalid(self, value):
        with pytest.raises(ProviderError):
            parse_quantity(value, "number")


class TestBlockRecord:
    """Tests for BlockRecord."""

    def test_from_rpc(self):
        """Hex fields from eth_getBlockByNumber are decoded."""
        record = BlockRecord.from_rpc(rpc_block(18_000_000, "0xdead", 1_700_000_000))

        assert record == BlockRecord(number=18_000_000, hash="0xdead", timestamp=1_700_000_000)

    def test_from_rpc_rejects_pending_block(self):
        """Pending blocks have no hash and are not head-of-chain."""
        payload = rpc_block(1, None, 1000)
        payload["number"] = None

        with pytest.raises(ProviderError, match="no hash"):
            BlockRecord.from_rpc(payload)

    def test_from_rpc_rejects_non_object(self):
        with pytest.raises(ProviderError):
            BlockRecord.from_rpc(["0x1"])

    def test_to_dict_is_verbatim(self):
        record = BlockRecord(number=5, hash="0xabc", timestamp=1000)

        assert record.to_dict() == {"number": 5, "hash": "0xabc", "timestamp": 1000}
        assert BlockRecord.from_dict(record.to_dict()) == record

    def test_immutable(self):
        record = BlockRecord(number=5, hash="0xabc", timestamp=1000)

        with pytest.raises(AttributeError):
            record.number = 6


class TestHealthVerdict:

    def test_reason_text(self):
        assert HealthVerdict(healthy=True).reason_text is None
        verdict = HealthVerdict(healthy=False, reason=HealthReason.STALE, stale_seconds=30)
        assert verdict.reason_text == "stale block"
        assert verdict.to_dict() == {"healthy": False, "reason": "stale block", "stale_seconds": 30}
