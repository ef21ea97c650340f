"""
Notification Service — order emails via Resend and the admin panel sink.

Resend is called over its REST API with httpx. Two messages go out per paid
order: the customer invoice and the admin notification. The admin side may
also POST the order to an external admin panel (ADMIN_PANEL_API_URL).

Every send raises DependencyError on failure; deciding whether a failure
matters is the caller's job.
"""
import html
import logging
from datetime import datetime
from typing import Optional

import httpx

from config import Settings
from domain.constants import ADMIN_PANEL_SOURCE
from domain.errors import ConfigurationError, DependencyError, DomainError
from models import Order
from utils.validators import parse_price, quantize_money

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailClient:
    """Minimal Resend client."""

    def __init__(self, api_key: str, timeout: float = 10.0, base_url: str = RESEND_API_URL):
        if not api_key:
            raise ConfigurationError("RESEND_API_KEY is not configured")
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url

    async def send(self, *, sender: str, to: str, subject: str, html_body: str) -> dict:
        """
        Send one HTML email.

        Returns:
            dict: {id} on success, {error} with the provider's message otherwise
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"from": sender, "to": [to], "subject": subject, "html": html_body}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            return {"error": f"Email provider error: {e.response.status_code} - {e.response.text}"}
        except (httpx.HTTPError, ValueError) as e:
            return {"error": f"Email request failed: {e}"}

        return {"id": result.get("id") if isinstance(result, dict) else None}


# ── Templates ───────────────────────────────────────────────────────

_BASE_STYLE = (
    "font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;"
    "line-height:1.6;color:#1a1a1a;max-width:600px;margin:0 auto;"
)


def _money(value) -> str:
    return f"${quantize_money(value):,.2f}"


def _order_date(order: Order) -> str:
    return (order.created_at or datetime.utcnow()).strftime("%B %d, %Y")


def _items_html(order: Order) -> str:
    rows = []
    for item in order.items:
        try:
            line_total = _money(parse_price(item.price) * item.quantity)
        except DomainError:
            line_total = html.escape(item.price)
        rows.append(
            "<tr>"
            f"<td style='padding:12px 0;border-bottom:1px solid #e5e5e5'>"
            f"<strong>{html.escape(item.name)}</strong><br>"
            f"<span style='font-size:12px;color:#666'>"
            f"{html.escape(item.category or '')} × {item.quantity}</span></td>"
            f"<td style='text-align:right;border-bottom:1px solid #e5e5e5'>{line_total}</td>"
            "</tr>"
        )
    return "".join(rows)


def _totals_html(order: Order) -> str:
    return (
        "<table width='100%' style='border-top:2px solid #1a1a1a;margin-top:20px'>"
        f"<tr><td>Subtotal</td><td style='text-align:right'>{_money(order.subtotal)}</td></tr>"
        f"<tr><td>Shipping</td><td style='text-align:right'>{_money(order.shipping_cost)}</td></tr>"
        f"<tr><td><strong>Total</strong></td>"
        f"<td style='text-align:right'><strong>{_money(order.total)}</strong></td></tr>"
        "</table>"
    )


def _shipping_html(order: Order) -> str:
    s = order.shipping
    if s is None:
        return ""
    lines = [
        s.full_name,
        s.address,
        f"{s.city}, {s.state} {s.zip_code}".strip(", "),
        s.country,
    ]
    body = "<br>".join(html.escape(line) for line in lines if line)
    return (
        "<div style='background:#f9f9f9;padding:20px;margin-top:30px;border:1px solid #e5e5e5'>"
        f"<h3 style='font-size:14px;text-transform:uppercase'>Shipping Address</h3>{body}</div>"
    )


def render_invoice_html(order: Order) -> str:
    return (
        f"<!DOCTYPE html><html><body style=\"{_BASE_STYLE}\">"
        "<h1 style='text-align:center;letter-spacing:4px'>YOUR BRAND</h1>"
        "<h2 style='text-align:center'>Order Confirmed</h2>"
        "<p style='text-align:center;color:#666'>Thank you for your purchase!</p>"
        f"<p><strong>Order ID:</strong> {html.escape(order.order_id)}<br>"
        f"<strong>Order Date:</strong> {_order_date(order)}<br>"
        f"<strong>Email:</strong> {html.escape(order.customer_email or '')}</p>"
        "<h3>Order Items</h3>"
        f"<table width='100%'>{_items_html(order)}</table>"
        f"{_totals_html(order)}{_shipping_html(order)}"
        "<p style='font-size:12px;color:#666;text-align:center'>"
        "If you have any questions, please contact us at support@yourbrand.com</p>"
        "</body></html>"
    )


def render_admin_html(order: Order) -> str:
    banner = (
        "<div style='background:#fff3cd;padding:12px;text-align:center'>"
        "⚠️ TEST MODE - This is a test order</div>"
        if order.is_test_mode
        else ""
    )
    reconcile_note = (
        ""
        if order.amount_reconciled
        else "<p style='color:#b00'>Charged amount does not equal subtotal + shipping.</p>"
    )
    return (
        f"<!DOCTYPE html><html><body style=\"{_BASE_STYLE}\">{banner}"
        "<h2>New Order Received</h2>"
        f"<p><strong>Order ID:</strong> {html.escape(order.order_id)}<br>"
        f"<strong>Order Date:</strong> {_order_date(order)}<br>"
        f"<strong>Customer:</strong> {html.escape(order.customer_name)}<br>"
        f"<strong>Email:</strong> {html.escape(order.customer_email or 'n/a')}</p>"
        f"<table width='100%'>{_items_html(order)}</table>"
        f"{_totals_html(order)}{reconcile_note}{_shipping_html(order)}"
        "</body></html>"
    )


def invoice_subject(order: Order) -> str:
    return f"Order Confirmation #{order.order_id[-8:]}"


def admin_subject(order: Order) -> str:
    prefix = "[TEST MODE] " if order.is_test_mode else ""
    return f"{prefix}New Order #{order.order_id[-8:]} - {_money(order.total)}"


# ── Notifier ────────────────────────────────────────────────────────

class Notifier:
    """Sends the per-order notifications. Built once at startup."""

    def __init__(
        self,
        *,
        email_client: Optional[EmailClient] = None,
        from_email: str = "Your Brand <onboarding@resend.dev>",
        admin_email: str = "",
        admin_panel_url: str = "",
        admin_panel_key: str = "",
        timeout: float = 10.0,
    ):
        self.email_client = email_client
        self.from_email = from_email
        self.admin_email = admin_email
        self.admin_panel_url = admin_panel_url
        self.admin_panel_key = admin_panel_key
        self.timeout = timeout

    @property
    def email_enabled(self) -> bool:
        return self.email_client is not None

    @property
    def admin_channels(self) -> list[str]:
        """Admin channels that are configured: 'email', 'adminPanel'."""
        channels = []
        if self.email_enabled and self.admin_email:
            channels.append("email")
        if self.admin_panel_url:
            channels.append("adminPanel")
        return channels

    async def _send_email(self, to: str, subject: str, html_body: str) -> str | None:
        if not self.email_enabled:
            raise ConfigurationError("Email is not configured")
        result = await self.email_client.send(
            sender=self.from_email, to=to, subject=subject, html_body=html_body,
        )
        if "error" in result:
            raise DependencyError(result["error"], details={"provider": "resend"})
        return result.get("id")

    async def send_invoice(self, order: Order) -> dict:
        if not order.customer_email:
            raise DependencyError("No email address found for order", details={"orderId": order.order_id})

        email_id = await self._send_email(
            order.customer_email, invoice_subject(order), render_invoice_html(order),
        )
        logger.info(f"Invoice email sent for {order.order_id}: {email_id}")
        return {"emailId": email_id}

    async def _post_to_admin_panel(self, order: Order) -> None:
        headers = {"Content-Type": "application/json"}
        if self.admin_panel_key:
            headers["Authorization"] = f"Bearer {self.admin_panel_key}"
        payload = {
            "order": order.to_api(),
            "timestamp": datetime.utcnow().isoformat(),
            "source": ADMIN_PANEL_SOURCE,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.admin_panel_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DependencyError(f"Admin panel error: {e.response.status_code}")
        except httpx.HTTPError as e:
            raise DependencyError(f"Admin panel request failed: {e}")

    async def notify_admin(self, order: Order) -> dict:
        """
        Deliver the order to every configured admin channel.

        Each channel is attempted even if another fails.

        Raises:
            DependencyError: at least one channel failed (details name each result)
        """
        results: dict = {}
        failures: dict = {}

        if "email" in self.admin_channels:
            try:
                results["emailId"] = await self._send_email(
                    self.admin_email, admin_subject(order), render_admin_html(order),
                )
            except DomainError as e:
                failures["email"] = e.message

        if "adminPanel" in self.admin_channels:
            try:
                await self._post_to_admin_panel(order)
                results["adminPanel"] = True
            except DomainError as e:
                failures["adminPanel"] = e.message

        if failures:
            logger.error(f"Admin notification failed for {order.order_id}: {failures}")
            raise DependencyError(
                "Admin notification failed",
                details={"delivered": results, "failed": failures},
            )

        logger.info(f"Admin notified for {order.order_id}: {results}")
        return results


def build_notifier(settings: Settings) -> Notifier:
    email_client = None
    if settings.resend_api_key:
        email_client = EmailClient(settings.resend_api_key, timeout=settings.outbound_timeout_seconds)
    else:
        logger.warning("RESEND_API_KEY not set, order emails will be skipped")

    return Notifier(
        email_client=email_client,
        from_email=settings.resend_from_email,
        admin_email=settings.admin_email,
        admin_panel_url=settings.admin_panel_api_url,
        admin_panel_key=settings.admin_panel_api_key,
        timeout=settings.outbound_timeout_seconds,
    )
