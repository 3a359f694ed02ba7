"""
Unit tests for the balance ledger.

Tests availability, debits, the first-session bonus and concurrent debits.
"""

import os
import tempfile
import threading

import pytest

from killer_assistant.core.ledger import (
    UNBOUNDED,
    BalanceLedger,
    TokenStatus,
    format_token_display,
    has_allowance,
)
from killer_assistant.core.pricing import BilledAction
from killer_assistant.errors import AccountNotFound, AllowanceExceeded
from killer_assistant.storage.models import Account, Plan
from killer_assistant.storage.repository import AccountRepository, initialize_schema


class TestBalanceLedger:
    """Test balance bookkeeping."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repository = AccountRepository(self.db_path)
        self.ledger = BalanceLedger(self.repository, first_session_bonus=10)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _create(self, account_id="u1", plan=Plan.METERED, allowance=100, consumed=0, pending=False):
        return self.repository.create_account(Account(
            id=account_id,
            plan=plan,
            allowance=allowance,
            consumed=consumed,
            first_session_bonus_pending=pending,
        ))

    def test_metered_available(self):
        """Verify available is allowance - consumed."""
        self._create(allowance=100, consumed=30)
        assert self.ledger.available("u1") == 70

    @pytest.mark.parametrize("plan", [Plan.UNMETERED_BASIC, Plan.UNMETERED_TOP])
    def test_unmetered_available_is_unbounded(self, plan):
        """Verify unmetered plans report an unbounded balance."""
        self._create(plan=plan, allowance=5)
        assert self.ledger.available("u1") == UNBOUNDED

    @pytest.mark.parametrize("plan", [Plan.UNMETERED_BASIC, Plan.UNMETERED_TOP])
    def test_unmetered_debits_never_change_consumed(self, plan):
        """Verify ten debits of 10 leave consumed at 0."""
        self._create(plan=plan, allowance=5)
        for _ in range(10):
            assert self.ledger.debit("u1", 10) == 0
            assert self.repository.get_account("u1").consumed == 0
        assert self.ledger.available("u1") == UNBOUNDED

    def test_metered_debit(self):
        """Verify a debit increments consumed and lowers available."""
        self._create(allowance=100, consumed=40)
        assert self.ledger.debit("u1", 8) == 48
        assert self.ledger.available("u1") == 52

    def test_exhaustion_scenario(self):
        """Drain a nearly exhausted account, then get refused at the gate."""
        self._create(allowance=100, consumed=90)

        assert self.ledger.debit("u1", 8) == 98
        assert self.ledger.available("u1") == 2

        self.ledger.debit("u1", 2)
        assert self.ledger.available("u1") == 0

        with pytest.raises(AllowanceExceeded):
            self.ledger.ensure_allowance("u1")
        with pytest.raises(AllowanceExceeded):
            self.ledger.debit("u1", 1)
        assert self.repository.get_account("u1").consumed == 100

    def test_charge_uses_pricing_table(self):
        """Verify charge debits the priced cost."""
        self._create(allowance=100)
        assert self.ledger.charge("u1", BilledAction.COMPLETION) == 10
        assert self.ledger.charge("u1", BilledAction.TRANSCRIPTION) == 12
        assert self.ledger.charge("u1", BilledAction.SCREEN_SHARE) == 13

    def test_cost_for_unmetered_is_zero(self):
        """Verify unmetered accounts are charged nothing."""
        account = self._create(plan=Plan.UNMETERED_BASIC)
        assert self.ledger.cost_for(account, BilledAction.COMPLETION) == 0

    def test_unknown_account(self):
        """Verify unknown accounts are reported."""
        with pytest.raises(AccountNotFound):
            self.ledger.available("nobody")
        with pytest.raises(AccountNotFound):
            self.ledger.debit("nobody", 1)
        with pytest.raises(AccountNotFound):
            self.ledger.load("nobody")

    def test_first_session_bonus_applies_exactly_once(self):
        """Verify two loads grant the bonus once."""
        self._create(plan=Plan.UNMETERED_BASIC, allowance=5, pending=True)

        first = self.ledger.load("u1")
        assert first.allowance == 15
        assert first.first_session_bonus_pending is False

        second = self.ledger.load("u1")
        assert second.allowance == 15

    def test_concurrent_debits_do_not_lose_updates(self):
        """Verify debits from parallel writers all land."""
        self._create(allowance=1000)
        errors = []

        def worker():
            try:
                for _ in range(10):
                    self.ledger.debit("u1", 1)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert self.repository.get_account("u1").consumed == 50

    def test_negative_bonus_rejected(self):
        """Verify the bonus cannot be negative."""
        with pytest.raises(ValueError):
            BalanceLedger(self.repository, first_session_bonus=-1)


class TestTokenDisplay:
    """Test the balance snapshot and display text."""

    def test_display_without_account(self):
        assert format_token_display(None) == "0"

    def test_display_unmetered(self):
        account = Account(id="u1", plan=Plan.UNMETERED_TOP, allowance=0, consumed=0)
        assert format_token_display(account) == "∞"

    def test_display_metered(self):
        account = Account(id="u1", plan=Plan.METERED, allowance=100, consumed=98)
        assert format_token_display(account) == "2"

    def test_token_status(self):
        metered = Account(id="u1", plan=Plan.METERED, allowance=100, consumed=40)
        assert TokenStatus.of(metered) == TokenStatus(100, 40, 60, "pro")

        free = Account(id="u2", plan=Plan.UNMETERED_BASIC, allowance=15, consumed=0)
        assert TokenStatus.of(free).remaining_tokens is None
        assert TokenStatus.of(free).subscription == "free"

    def test_has_allowance(self):
        assert has_allowance(UNBOUNDED)
        assert has_allowance(1)
        assert not has_allowance(0)
        assert not has_allowance(-6)
