"""
Unit tests for the auto-refill task and the Stripe collaborator
"""
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import stripe

from blindbot.core.config import Settings
from blindbot.services.stripe_service import StripeRefillError, StripeService
from blindbot.tasks.billing_tasks import trigger_auto_refill


@pytest.fixture
def stripe_settings():
    return Settings(stripe_secret_key="sk_test_123", stripe_credits_price_id="price_pack_300")


class TestStripeService:

    def test_disabled_without_key(self):
        service = StripeService(Settings(stripe_secret_key=None))

        assert service.is_enabled() is False
        with pytest.raises(StripeRefillError):
            service.charge_credit_pack("cus_1")

    def test_charge_credit_pack(self, stripe_settings):
        service = StripeService(stripe_settings)

        with patch.object(stripe.InvoiceItem, "create") as create_item, \
                patch.object(stripe.Invoice, "create", return_value=SimpleNamespace(id="in_42")) as create_invoice, \
                patch.object(stripe.Invoice, "pay") as pay:
            invoice_id = service.charge_credit_pack("cus_1")

        assert invoice_id == "in_42"
        create_item.assert_called_once_with(customer="cus_1", price="price_pack_300")
        create_invoice.assert_called_once_with(
            customer="cus_1", auto_advance=True, collection_method="charge_automatically"
        )
        pay.assert_called_once_with("in_42")

    def test_stripe_error_is_wrapped(self, stripe_settings):
        service = StripeService(stripe_settings)

        with patch.object(stripe.InvoiceItem, "create", side_effect=stripe.StripeError("card declined")):
            with pytest.raises(StripeRefillError, match="card declined"):
                service.charge_credit_pack("cus_1")

    def test_missing_customer(self, stripe_settings):
        with pytest.raises(StripeRefillError):
            StripeService(stripe_settings).charge_credit_pack("")


class TestTriggerAutoRefill:

    def test_paid(self):
        service = Mock()
        service.charge_credit_pack.return_value = "in_7"

        with patch("blindbot.tasks.billing_tasks.get_stripe_service", return_value=service):
            result = trigger_auto_refill("cus_7")

        assert result == {"status": "paid", "customer": "cus_7", "invoice_id": "in_7"}

    def test_failure_is_reported_not_raised(self):
        service = Mock()
        service.charge_credit_pack.side_effect = StripeRefillError("card declined")

        with patch("blindbot.tasks.billing_tasks.get_stripe_service", return_value=service):
            result = trigger_auto_refill("cus_7")

        assert result["status"] == "failed"
        assert "card declined" in result["error"]

    def test_missing_customer_is_skipped(self):
        with patch("blindbot.tasks.billing_tasks.get_stripe_service") as factory:
            result = trigger_auto_refill("")

        assert result["status"] == "skipped"
        factory.assert_not_called()
