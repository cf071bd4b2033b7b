"""Tests for the limit ledger store."""

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from faucet.database.models import AccountQuotaRecord, Base, FaucetPolicy
from faucet.services.limit_ledger import AccountQuota, GlobalPolicy, LimitLedger

SEED = GlobalPolicy(default_request_limit=Decimal("20"), default_account_limit=Decimal("100"))


class TestLimitLedger:
    """Test quota record storage and policy fallback."""

    @pytest.fixture
    def test_db(self):
        """Create test database session."""
        engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(engine)
        session_local = sessionmaker(bind=engine)
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    @pytest.fixture
    def ledger(self, test_db):
        return LimitLedger(test_db, SEED)

    def test_get_missing_account_returns_defaults(self, ledger, test_db):
        quota = ledger.get("alice")

        assert quota.spent == Decimal("0")
        assert quota.account_limit == Decimal("100")
        assert quota.request_limit == Decimal("20")
        assert quota.stored is False
        assert test_db.query(AccountQuotaRecord).count() == 0

    def test_put_then_get(self, ledger, test_db):
        quota = ledger.get("alice")
        quota.spent = Decimal("12.5")
        quota.account_limit_override = Decimal("300")
        ledger.put("alice", quota)
        test_db.commit()

        stored = ledger.get("alice")

        assert stored.stored is True
        assert stored.spent == Decimal("12.5")
        assert stored.account_limit == Decimal("300")
        assert stored.request_limit == Decimal("20")
        assert stored.remaining == Decimal("287.5")

    def test_put_replaces_existing_record(self, ledger, test_db):
        ledger.put("alice", AccountQuota("alice", SEED, spent=Decimal("5")))
        ledger.put("alice", AccountQuota("alice", SEED, spent=Decimal("7")))
        test_db.commit()

        assert test_db.query(AccountQuotaRecord).count() == 1
        assert ledger.get("alice").spent == Decimal("7")

    def test_accounts_without_override_follow_policy(self, ledger, test_db):
        ledger.put("alice", AccountQuota("alice", SEED, spent=Decimal("10")))
        ledger.set_policy(GlobalPolicy(Decimal("50"), Decimal("500")))
        test_db.commit()

        quota = ledger.get("alice")

        assert quota.request_limit == Decimal("50")
        assert quota.account_limit == Decimal("500")

    def test_policy_falls_back_to_seed(self, ledger, test_db):
        assert ledger.get_policy() == SEED

        ledger.set_policy(GlobalPolicy(Decimal("25"), Decimal("125")))
        ledger.set_policy(GlobalPolicy(Decimal("30"), Decimal("150")))
        test_db.commit()

        assert test_db.query(FaucetPolicy).count() == 1
        assert ledger.get_policy() == GlobalPolicy(Decimal("30"), Decimal("150"))

    def test_uncommitted_put_is_rolled_back(self, ledger, test_db):
        quota = ledger.get("bob")
        quota.spent = Decimal("20")
        ledger.put("bob", quota)
        test_db.rollback()

        assert ledger.get("bob").spent == Decimal("0")
