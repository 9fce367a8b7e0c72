"""
Unit tests for CreditLedger
"""
from unittest.mock import Mock

import pytest

from blindbot.db.models import CreditTransaction, Tenant
from blindbot.services.credit_ledger import CreditLedger


def balance_of(db_session, tenant_id):
    db_session.expire_all()
    return db_session.get(Tenant, tenant_id).image_credits


@pytest.fixture
def ledger(db_session, refill_trigger):
    return CreditLedger(db_session, refill_trigger=refill_trigger, low_balance_threshold=5)


class TestTenantAccess:

    def test_get_tenant_by_api_key(self, ledger, make_tenant):
        tenant = make_tenant(api_key="widget-key-1")

        assert ledger.get_tenant("widget-key-1").id == tenant.id
        assert ledger.get_tenant("nope") is None

    @pytest.mark.parametrize("api_key", [None, ""])
    def test_empty_key_resolves_nothing(self, ledger, api_key):
        assert ledger.get_tenant(api_key) is None

    def test_check_access(self, ledger, make_tenant):
        assert ledger.check_access(make_tenant()).allowed is True

        denied = ledger.check_access(None)
        assert denied.allowed is False
        assert denied.reason == "unknown_api_key"

        suspended = ledger.check_access(make_tenant(status="suspended"))
        assert suspended.allowed is False
        assert suspended.reason == "tenant_suspended"

    def test_zero_credits_still_allows_chat(self, ledger, make_tenant):
        assert ledger.check_access(make_tenant(image_credits=0)).allowed is True


class TestTryDeduct:

    def test_empty_balance_is_denied_and_unchanged(self, ledger, make_tenant, db_session):
        tenant = make_tenant(image_credits=0)

        assert ledger.try_deduct(tenant.id) is False
        assert balance_of(db_session, tenant.id) == 0
        assert db_session.query(CreditTransaction).count() == 0

    def test_last_credit_is_taken(self, ledger, make_tenant, db_session):
        tenant = make_tenant(image_credits=1)

        assert ledger.try_deduct(tenant.id) is True
        assert balance_of(db_session, tenant.id) == 0

    def test_balance_never_goes_negative(self, ledger, make_tenant, db_session):
        tenant = make_tenant(image_credits=2)

        results = [ledger.try_deduct(tenant.id) for _ in range(4)]

        assert results == [True, True, False, False]
        assert balance_of(db_session, tenant.id) == 0

    def test_transaction_row_written(self, ledger, make_tenant, db_session):
        tenant = make_tenant(image_credits=8)

        ledger.try_deduct(tenant.id, reason="render")

        tx = db_session.query(CreditTransaction).one()
        assert tx.tenant_id == tenant.id
        assert tx.delta == -1
        assert tx.balance_after == 7
        assert tx.reason == "render"

    def test_unknown_tenant_is_denied(self, ledger):
        assert ledger.try_deduct("no-such-tenant") is False


class TestAutoRefill:

    def test_low_balance_triggers_refill(self, ledger, make_tenant, refill_trigger):
        tenant = make_tenant(image_credits=6, auto_replenish=True, stripe_customer_id="cus_123")

        ledger.try_deduct(tenant.id)

        refill_trigger.assert_called_once_with("cus_123")

    def test_balance_above_threshold_does_not_trigger(self, ledger, make_tenant, refill_trigger):
        tenant = make_tenant(image_credits=7, auto_replenish=True, stripe_customer_id="cus_123")

        ledger.try_deduct(tenant.id)

        refill_trigger.assert_not_called()

    @pytest.mark.parametrize("overrides", [
        {"auto_replenish": False, "stripe_customer_id": "cus_123"},
        {"auto_replenish": True, "stripe_customer_id": None},
    ])
    def test_refill_requires_opt_in_and_customer(self, ledger, make_tenant, refill_trigger, overrides):
        tenant = make_tenant(image_credits=3, **overrides)

        ledger.try_deduct(tenant.id)

        refill_trigger.assert_not_called()

    def test_refill_failure_does_not_fail_deduction(self, db_session, make_tenant):
        trigger = Mock(side_effect=ConnectionError("broker down"))
        ledger = CreditLedger(db_session, refill_trigger=trigger, low_balance_threshold=5)
        tenant = make_tenant(image_credits=2, auto_replenish=True, stripe_customer_id="cus_9")

        assert ledger.try_deduct(tenant.id) is True
        assert balance_of(db_session, tenant.id) == 1
        trigger.assert_called_once_with("cus_9")

    def test_denied_deduction_never_triggers(self, ledger, make_tenant, refill_trigger):
        tenant = make_tenant(image_credits=0, auto_replenish=True, stripe_customer_id="cus_1")

        ledger.try_deduct(tenant.id)

        refill_trigger.assert_not_called()
