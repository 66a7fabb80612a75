"""
Test suite for card issuance

Tests card number format, expiry and CVV ranges, and display helpers.
"""

import random
import pytest
from datetime import datetime, timezone

from hsa_ledger.cards import Card, CardIssuer


FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class TestCardIssuer:
    """Test card generation"""

    def setup_method(self):
        self.issuer = CardIssuer(rng=random.Random(42), clock=lambda: FIXED_NOW)

    def test_card_number_format(self):
        """Test prefix, length and digits of generated numbers"""
        for _ in range(50):
            card = self.issuer.issue("ACC001")
            assert card.card_number.startswith("4000")
            assert len(card.card_number) == 16
            assert card.card_number.isdigit()
            # Serial never starts with zero
            assert card.card_number[4] != "0"

    def test_expiry_and_cvv_ranges(self):
        """Test expiry month, expiry year and CVV"""
        months = set()
        for _ in range(200):
            card = self.issuer.issue("ACC001")
            assert 1 <= card.expiry_month <= 12
            assert card.expiry_year == 2029
            assert len(card.cvv) == 3
            assert 100 <= int(card.cvv) <= 999
            months.add(card.expiry_month)

        assert len(months) > 1

    def test_card_bound_to_account(self):
        """Test back-reference and identity"""
        first = self.issuer.issue("ACC001")
        second = self.issuer.issue("ACC001")

        assert first.account_id == "ACC001"
        assert first.id != second.id
        assert first.created_at == FIXED_NOW

    def test_custom_prefix_and_validity(self):
        """Test configurable prefix and validity years"""
        issuer = CardIssuer(prefix="5100", validity_years=5, clock=lambda: FIXED_NOW)
        card = issuer.issue("ACC001")

        assert card.card_number.startswith("5100")
        assert card.expiry_year == 2031
        assert issuer.number_length == 16

    def test_non_numeric_prefix_rejected(self):
        """Test that the prefix must be digits"""
        with pytest.raises(ValueError, match="numeric"):
            CardIssuer(prefix="VISA")

    def test_default_clock_uses_current_year(self):
        """Test expiry year against the real clock"""
        card = CardIssuer().issue("ACC001")
        assert card.expiry_year == datetime.now(timezone.utc).year + 3


class TestCard:
    """Test Card display helpers and serialization"""

    def setup_method(self):
        self.card = Card(
            id="CARD001",
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
            card_number="4000123456789012",
            expiry_month=7,
            expiry_year=2029,
            cvv="123",
            account_id="ACC001"
        )

    def test_display_helpers(self):
        """Test expiry string and masking"""
        assert self.card.expiry == "07/2029"
        assert self.card.last4 == "9012"
        assert self.card.masked_number == "•••• 9012"

    def test_dict_round_trip(self):
        """Test storage serialization"""
        data = self.card.to_dict()
        assert data["card_number"] == "4000123456789012"
        assert data["created_at"] == FIXED_NOW.isoformat()

        assert Card.from_dict(data) == self.card
