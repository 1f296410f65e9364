"""aiohttp application exposing checkout, status and webhook endpoints."""

import asyncio
import json
import logging
import signal
from typing import Optional

from aiohttp import web

from subtrack.config import AppConfig
from subtrack.errors import SubscriptionError
from subtrack.payments.checkout import CheckoutInitiator
from subtrack.payments.provider import PaymentProvider, StripeProvider
from subtrack.payments.webhooks import handle_webhook
from subtrack.subscriptions.status import get_subscription_status
from subtrack.subscriptions.store import SubscriptionStore

logger = logging.getLogger(__name__)


async def ping(request: web.Request) -> web.Response:
    """Handle GET /api/ping."""
    return web.json_response({"message": request.app["config"].ping_message})


async def create_checkout_session(request: web.Request) -> web.Response:
    """Handle POST /api/create-checkout-session.

    Body: {"email": str, "plan": "Basic" | "Pro" | "Enterprise"}
    """
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "Request body must be JSON"}, status=400)
    if not isinstance(body, dict):
        return web.json_response({"error": "Email and plan are required"}, status=400)

    checkout: CheckoutInitiator = request.app["checkout"]
    try:
        url = await checkout.create_checkout_url(body.get("email"), body.get("plan"))
    except SubscriptionError as e:
        if e.status_code == 400:
            return web.json_response({"error": str(e)}, status=400)
        logger.error(f"Error creating checkout session: {e}")
        return web.json_response({"error": "Failed to create checkout session"}, status=500)
    except Exception as e:
        logger.exception(f"Unexpected error creating checkout session: {e}")
        return web.json_response({"error": "Failed to create checkout session"}, status=500)

    return web.json_response({"url": url})


async def subscription_status(request: web.Request) -> web.Response:
    """Handle GET /api/subscription-status/{email}."""
    email = request.match_info.get("email", "")

    try:
        result = await get_subscription_status(email, request.app["store"])
    except SubscriptionError as e:
        if e.status_code in (400, 404):
            return web.json_response({"error": str(e)}, status=e.status_code)
        logger.error(f"Error fetching subscription status for {email}: {e}")
        return web.json_response({"error": "Failed to fetch subscription status"}, status=500)
    except Exception as e:
        logger.exception(f"Unexpected error fetching subscription status for {email}: {e}")
        return web.json_response({"error": "Failed to fetch subscription status"}, status=500)

    return web.json_response(result)


async def webhook_endpoint(request: web.Request) -> web.Response:
    """Handle POST /api/webhook.

    The body is read raw; Stripe signs the exact bytes it sent.
    """
    payload = await request.read()
    return await handle_webhook(
        payload,
        request.headers.get("Stripe-Signature"),
        provider=request.app["provider"],
        store=request.app["store"],
    )


def create_app(
    config: AppConfig,
    store: Optional[SubscriptionStore] = None,
    provider: Optional[PaymentProvider] = None,
) -> web.Application:
    """Create the aiohttp application.

    Args:
        config: Application config
        store: Subscription store (defaults to one backed by the shared pool)
        provider: Payment provider (defaults to Stripe, keyed from config)

    Returns:
        Configured aiohttp Application
    """
    if store is None:
        store = SubscriptionStore()
    if provider is None:
        provider = StripeProvider.from_config(config)

    app = web.Application()
    app["config"] = config
    app["store"] = store
    app["provider"] = provider
    app["checkout"] = CheckoutInitiator(store, provider, config)

    app.router.add_get("/api/ping", ping)
    app.router.add_post("/api/create-checkout-session", create_checkout_session)
    app.router.add_get("/api/subscription-status/{email}", subscription_status)
    app.router.add_post("/api/webhook", webhook_endpoint)

    return app


async def run_server(
    app: web.Application,
    shutdown_event: Optional[asyncio.Event] = None,
) -> None:
    """Serve the app until shutdown_event is set (or forever)."""
    config: AppConfig = app["config"]

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.server_host, config.server_port)
    await site.start()

    logger.info(f"Listening on {config.server_host}:{config.server_port}")

    try:
        await (shutdown_event or asyncio.Event()).wait()
    finally:
        logger.info("Shutting down HTTP server...")
        await runner.cleanup()


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Set shutdown_event on SIGTERM/SIGINT. Call from inside the running loop."""
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _on_signal, sig, shutdown_event)


def _on_signal(sig: signal.Signals, shutdown_event: asyncio.Event) -> None:
    logger.info(f"Received signal {sig.name}")
    shutdown_event.set()
