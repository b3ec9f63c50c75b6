import logging
from typing import Iterable, List

import httpx

from .config import get_settings
from .models import Order

logger = logging.getLogger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
LINE_BROADCAST_URL = "https://api.line.me/v2/bot/message/broadcast"


def _post_line(url: str, token: str, payload: dict) -> None:
    try:
        response = httpx.post(
            url,
            headers={"Authorization": f"Bearer {token}"},
            json=payload,
            timeout=5,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to send LINE message: %s", exc)


def _push(recipient: str, token: str, text: str) -> None:
    payload = {
        "to": recipient,
        "messages": [{"type": "text", "text": text}],
    }
    _post_line(LINE_PUSH_URL, token, payload)


def _broadcast(token: str, text: str) -> None:
    payload = {
        "messages": [{"type": "text", "text": text}],
    }
    _post_line(LINE_BROADCAST_URL, token, payload)


def _format_items(order: Order) -> str:
    if not order.items:
        return "- (no items)"
    lines: List[str] = []
    for item in order.items:
        name = item.product.name if item.product else f"Product #{item.product_id}"
        lines.append(f"- {name} x{item.quantity}")
    return "\n".join(lines)


def format_order_message(order: Order, action: str) -> str:
    prefix = {
        "create": "New order",
        "paid": "Order paid",
    }.get(action, "Order update")
    table = order.table.table_number if order.table else "takeaway"
    return (
        f"{prefix} #{order.id}\n"
        f"Table: {table}\n"
        f"Total: {order.total_amount:.2f}\n"
        f"Status: {order.status}\n"
        "\nItems:\n"
        f"{_format_items(order)}"
    )


def notify_order_event(order: Order, action: str) -> None:
    """Send a LINE notification for an order event, when LINE is configured."""
    settings = get_settings()
    token = settings.line_channel_access_token
    targets: Iterable[str] = settings.line_target_ids
    if not token:
        return

    text = format_order_message(order, action)
    if targets:
        for recipient in targets:
            _push(recipient, token, text)
    else:
        _broadcast(token, text)
