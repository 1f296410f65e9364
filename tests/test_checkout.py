"""Tests for checkout initiation and the Stripe checkout call."""

from unittest.mock import Mock, patch

import pytest
import stripe

from subtrack.db.models import PlanName, SubscriptionStatus
from subtrack.errors import InvalidRequestError, ProviderError
from subtrack.payments.checkout import CheckoutInitiator, validate_checkout_request
from subtrack.payments.provider import StripeProvider
from subtrack.subscriptions.models import SubscriptionRecord


class TestValidation:
    @pytest.mark.parametrize("email,plan", [
        ("", "Pro"),
        ("a@b.com", ""),
        (None, "Pro"),
        ("a@b.com", None),
        (42, "Pro"),
    ])
    def test_missing_fields(self, email, plan):
        with pytest.raises(InvalidRequestError, match="Email and plan are required"):
            validate_checkout_request(email, plan)

    @pytest.mark.parametrize("plan", ["Premium", "pro", "PRO", "basic "])
    def test_unknown_plan(self, plan):
        with pytest.raises(InvalidRequestError, match="Invalid plan selected"):
            validate_checkout_request("a@b.com", plan)

    @pytest.mark.parametrize("plan", ["Basic", "Pro", "Enterprise"])
    def test_valid_plans(self, plan):
        assert validate_checkout_request("a@b.com", plan) is PlanName(plan)


class TestCheckoutInitiator:
    @pytest.mark.asyncio
    async def test_returns_hosted_url(self, store, provider, config):
        checkout = CheckoutInitiator(store, provider, config)

        url = await checkout.create_checkout_url("a@b.com", "Pro")

        assert url.startswith("https://checkout.stripe.com/")

    @pytest.mark.asyncio
    async def test_session_parameters(self, store, provider, config):
        checkout = CheckoutInitiator(store, provider, config)

        await checkout.create_checkout_url("a@b.com", "Enterprise")

        assert provider.sessions == [{
            "price_id": "price_enterprise_test",
            "customer_email": "a@b.com",
            "metadata": {"email": "a@b.com", "plan": "Enterprise"},
            "success_url": "https://app.example.com/success?session_id={CHECKOUT_SESSION_ID}",
            "cancel_url": "https://app.example.com/",
        }]

    @pytest.mark.asyncio
    async def test_creates_incomplete_record(self, store, provider, config):
        checkout = CheckoutInitiator(store, provider, config)

        await checkout.create_checkout_url("a@b.com", "Basic")

        record = store.records["a@b.com"]
        assert record.plan_name is PlanName.BASIC
        assert record.status is SubscriptionStatus.INCOMPLETE

    @pytest.mark.asyncio
    async def test_second_checkout_does_not_duplicate_record(self, store, provider, config):
        checkout = CheckoutInitiator(store, provider, config)

        await checkout.create_checkout_url("a@b.com", "Basic")
        await checkout.create_checkout_url("a@b.com", "Pro")

        assert len(store.records) == 1
        assert store.writes == 1
        # The original plan is kept; only webhooks mutate the record
        assert store.records["a@b.com"].plan_name is PlanName.BASIC
        assert len(provider.sessions) == 2

    @pytest.mark.asyncio
    async def test_store_unavailable_does_not_block_checkout(self, store, provider, config):
        store.available = False
        checkout = CheckoutInitiator(store, provider, config)

        url = await checkout.create_checkout_url("a@b.com", "Pro")

        assert url.startswith("https://checkout.stripe.com/")
        assert store.records == {}

    @pytest.mark.asyncio
    async def test_concurrent_creation_is_tolerated(self, store, provider, config):
        # Another request inserted the row between our lookup and insert
        await store.create(SubscriptionRecord(email="a@b.com", plan_name=PlanName.PRO))

        async def stale_lookup(email):
            return None

        store.get_by_email = stale_lookup
        checkout = CheckoutInitiator(store, provider, config)

        url = await checkout.create_checkout_url("a@b.com", "Pro")

        assert url.startswith("https://checkout.stripe.com/")
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_provider_failure_raises_provider_error(self, store, provider, config):
        provider.fail_checkout = True
        checkout = CheckoutInitiator(store, provider, config)

        with pytest.raises(ProviderError):
            await checkout.create_checkout_url("a@b.com", "Pro")

    @pytest.mark.asyncio
    async def test_invalid_request_touches_nothing(self, store, provider, config):
        checkout = CheckoutInitiator(store, provider, config)

        with pytest.raises(InvalidRequestError):
            await checkout.create_checkout_url("a@b.com", "Gold")

        assert store.records == {}
        assert provider.sessions == []


class TestStripeProvider:
    @patch("subtrack.payments.provider.stripe.checkout.Session.create")
    def test_create_checkout_session(self, mock_create):
        mock_session = Mock()
        mock_session.id = "cs_test_123"
        mock_session.url = "https://checkout.stripe.com/c/pay/cs_test_123"
        mock_create.return_value = mock_session

        provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")
        url = provider.create_checkout_session(
            price_id="price_pro_test",
            customer_email="a@b.com",
            metadata={"email": "a@b.com", "plan": "Pro"},
            success_url="https://app.example.com/success?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="https://app.example.com/",
        )

        assert url == "https://checkout.stripe.com/c/pay/cs_test_123"
        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["api_key"] == "sk_test_123"
        assert call_kwargs["mode"] == "subscription"
        assert call_kwargs["line_items"] == [{"price": "price_pro_test", "quantity": 1}]
        assert call_kwargs["customer_email"] == "a@b.com"
        assert call_kwargs["metadata"] == {"email": "a@b.com", "plan": "Pro"}

    @patch("subtrack.payments.provider.stripe.checkout.Session.create")
    def test_stripe_error_becomes_provider_error(self, mock_create):
        mock_create.side_effect = stripe.StripeError("No such price: 'price_pro_test'")
        provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")

        with pytest.raises(ProviderError, match="No such price"):
            provider.create_checkout_session(
                price_id="price_pro_test",
                customer_email="a@b.com",
                metadata={},
                success_url="https://app.example.com/success",
                cancel_url="https://app.example.com/",
            )

    @patch("subtrack.payments.provider.stripe.checkout.Session.create")
    def test_session_without_url(self, mock_create):
        mock_session = Mock()
        mock_session.id = "cs_test_123"
        mock_session.url = None
        mock_create.return_value = mock_session
        provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test")

        with pytest.raises(ProviderError, match="has no URL"):
            provider.create_checkout_session(
                price_id="price_pro_test",
                customer_email="a@b.com",
                metadata={},
                success_url="https://app.example.com/success",
                cancel_url="https://app.example.com/",
            )

    def test_missing_secret_key(self):
        provider = StripeProvider(secret_key="", webhook_secret="whsec_test")

        with pytest.raises(ProviderError, match="stripe_secret_key"):
            provider.create_checkout_session(
                price_id="price_pro_test",
                customer_email="a@b.com",
                metadata={},
                success_url="https://app.example.com/success",
                cancel_url="https://app.example.com/",
            )

    def test_from_config(self, config):
        provider = StripeProvider.from_config(config)

        assert provider._secret_key == "sk_test_123"
        assert provider._webhook_secret == "whsec_test_123"
