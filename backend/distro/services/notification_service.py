# Overview: Best-effort outbound notifications to shop owners; never part of a ledger transaction.

"""
Shop Notification Gateway

Services call notifier.notify(channel_id, event_kind, payload) only after
their transaction has committed. Delivery runs on a small thread pool (or
inline when NOTIFICATIONS_SYNC is set) and every delivery failure is logged
and swallowed: an unreachable chat never affects an order or a payment.

Payloads are structured dicts (ids, names, cents and formatted amounts,
ISO timestamps); the gateway owns the final human-readable text.
"""

from __future__ import annotations

import atexit
import logging
from concurrent.futures import ThreadPoolExecutor

import httpx

logger = logging.getLogger(__name__)

EVENT_ORDER_CREATED = "order.created"
EVENT_ORDER_DELIVERED = "order.delivered"
EVENT_PAYMENT_RECEIVED = "payment.received"
EVENT_MANUAL_DEBT_ADDED = "debt.manual_added"


class NotificationError(Exception):
    """Raised by gateways when a message could not be delivered."""


# =============================================================================
# MESSAGE RENDERING
# =============================================================================

def _render_items(items: list[dict], currency: str) -> tuple[str, int]:
    lines = []
    unit_count = 0
    for index, item in enumerate(items, start=1):
        unit_count += int(item.get("quantity") or 0)
        lines.append(
            f"{index}. *{item.get('product_name') or 'Product'}*\n"
            f"   {item.get('quantity')} x {item.get('price_at_time')} = {item.get('subtotal')} {currency}"
        )
    return "\n\n".join(lines), unit_count


def render_message(event_kind: str, payload: dict, currency: str = "so'm") -> str:
    """Turn a structured event payload into Telegram Markdown text."""
    if event_kind in (EVENT_ORDER_CREATED, EVENT_ORDER_DELIVERED):
        order = payload.get("order", {})
        items_text, unit_count = _render_items(order.get("items", []), currency)
        if event_kind == EVENT_ORDER_CREATED:
            header = "🔔 *New order created!*"
            footer = "⏰ Your goods will be delivered soon."
        else:
            header = "✅ *Order delivered!*"
            footer = f"📅 Delivered at: {order.get('delivered_at')}"
        actor = payload.get("actor") or {}
        return (
            f"{header}\n\n"
            f"📋 Order #{order.get('id')}\n"
            f"👤 Agent: {actor.get('name', '-')}\n"
            f"📞 Phone: {actor.get('phone', '-')}\n\n"
            f"📦 Products ({unit_count} units):\n"
            f"{items_text}\n\n"
            f"💰 *Total: {order.get('total_price')} {currency}*\n"
            f"💳 Paid: {order.get('paid_amount')} {currency}\n"
            f"📊 Remaining: {order.get('remaining_amount')} {currency}\n"
            f"📦 Status: {order.get('status')}\n\n"
            f"{footer}"
        )

    if event_kind == EVENT_PAYMENT_RECEIVED:
        entry = payload.get("entry", {})
        return (
            "💵 *Payment received!*\n\n"
            f"🏪 Shop: {payload.get('shop', {}).get('name')}\n"
            f"💰 Amount: {entry.get('display_amount')} {currency}\n"
            f"💳 Method: {entry.get('kind')}\n"
            f"📉 Previous debt: {payload.get('previous_debt')} {currency}\n"
            f"📊 Remaining debt: {payload.get('new_debt')} {currency}\n"
            f"🕒 {entry.get('created_at')}"
        )

    if event_kind == EVENT_MANUAL_DEBT_ADDED:
        entry = payload.get("entry", {})
        note = entry.get("note")
        return (
            "📝 *Debt added*\n\n"
            f"🏪 Shop: {payload.get('shop', {}).get('name')}\n"
            f"➕ Added: {entry.get('display_amount')} {currency}\n"
            f"📉 Previous debt: {payload.get('previous_debt')} {currency}\n"
            f"📊 Total debt: {payload.get('new_debt')} {currency}\n"
            + (f"🗒 {note}\n" if note else "")
            + f"🕒 {entry.get('created_at')}"
        )

    raise NotificationError(f"Unknown notification event: {event_kind}")


# =============================================================================
# GATEWAYS
# =============================================================================

class NotificationGateway:
    """Delivers one event to one channel. Implementations may raise."""

    def send(self, channel_id: str, event_kind: str, payload: dict) -> None:
        raise NotImplementedError


class LogGateway(NotificationGateway):
    """Used when no bot token is configured: delivery is a log line."""

    def send(self, channel_id: str, event_kind: str, payload: dict) -> None:
        logger.info("Notification %s for channel %s (no gateway configured)", event_kind, channel_id)


class TelegramGateway(NotificationGateway):
    def __init__(self, token: str, api_base: str = "https://api.telegram.org",
                 timeout: float = 5.0, currency: str = "so'm", transport=None):
        self.token = token
        self.transport = transport
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.currency = currency

    @property
    def send_message_url(self) -> str:
        return f"{self.api_base}/bot{self.token}/sendMessage"

    def send(self, channel_id: str, event_kind: str, payload: dict) -> None:
        text = render_message(event_kind, payload, self.currency)
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.send_message_url, json={
                    "chat_id": channel_id,
                    "text": text,
                    "parse_mode": "Markdown",
                })
                response.raise_for_status()
        except (httpx.RequestError, httpx.HTTPStatusError) as exc:
            raise NotificationError(f"Telegram delivery to {channel_id} failed: {exc}") from exc


# =============================================================================
# DISPATCHER (Flask extension)
# =============================================================================

class NotificationDispatcher:
    """
    Fire-and-forget fan-out to a NotificationGateway.

    notify() never raises and never blocks on the network unless the app is
    configured for synchronous delivery (tests, CLI).
    """

    def __init__(self, app=None):
        self.gateway: NotificationGateway = LogGateway()
        self.enabled = True
        self.synchronous = False
        self._executor: ThreadPoolExecutor | None = None
        self._exit_hook_registered = False
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        config = app.config
        self.enabled = bool(config.get("NOTIFICATIONS_ENABLED", True))
        self.synchronous = bool(config.get("NOTIFICATIONS_SYNC", False))

        token = config.get("TELEGRAM_BOT_TOKEN")
        if token:
            self.gateway = TelegramGateway(
                token,
                api_base=config.get("TELEGRAM_API_BASE", "https://api.telegram.org"),
                timeout=config.get("TELEGRAM_TIMEOUT", 5.0),
                currency=config.get("CURRENCY_LABEL", "so'm"),
            )
        else:
            self.gateway = LogGateway()

        if not self.synchronous and self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, int(config.get("NOTIFICATION_WORKERS", 2))),
                thread_name_prefix="notify",
            )
            if not self._exit_hook_registered:
                # Drain queued deliveries before the interpreter exits.
                atexit.register(self.shutdown)
                self._exit_hook_registered = True

        app.extensions["notifier"] = self

    def set_gateway(self, gateway: NotificationGateway) -> None:
        self.gateway = gateway

    def notify(self, channel_id: str | None, event_kind: str, payload) -> None:
        """
        Queue one event for a shop channel.

        `payload` is a dict or a zero-argument callable returning one; a
        callable is built here, and a failure while building it is logged
        and dropped like a failed delivery.
        """
        if not self.enabled:
            return
        if callable(payload):
            try:
                payload = payload()
            except Exception:
                logger.exception("Failed to build %s notification for channel %s", event_kind, channel_id)
                return
        if not channel_id:
            shop_name = (payload.get("shop") or {}).get("name")
            logger.warning("Shop %s does not have a notification channel configured", shop_name)
            return

        if self.synchronous or self._executor is None:
            self._deliver(channel_id, event_kind, payload)
            return
        try:
            self._executor.submit(self._deliver, channel_id, event_kind, payload)
        except RuntimeError:
            logger.exception("Notification executor unavailable; dropped %s for %s", event_kind, channel_id)

    def _deliver(self, channel_id: str, event_kind: str, payload: dict) -> None:
        try:
            self.gateway.send(channel_id, event_kind, payload)
            logger.info("Notification %s sent to channel %s", event_kind, channel_id)
        except Exception:
            logger.exception("Failed to send %s notification to channel %s", event_kind, channel_id)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
