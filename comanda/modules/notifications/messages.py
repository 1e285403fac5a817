"""
Composición del mensaje de confirmación y del comprobante impreso
con templates Jinja2.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from comanda.common.money import format_brl
from comanda.modules.notifications.schemas import NoticeItem, OrderNotice

logger = logging.getLogger(__name__)

RECEIPT_WIDTH = 32
PAID_BANNER = "PAGO"
UNPAID_BANNER = "A PAGAR"


class MessageComposer:
    """Renderiza los textos del pedido confirmado."""

    def __init__(self):
        template_dir = Path(__file__).parent / "templates"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=False
        )

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.jinja_env.get_template(template_name)
            return template.render(**context)
        except Exception as e:
            logger.error(f"Error rendering template {template_name}: {str(e)}")
            raise

    def confirmation_message(self, notice: OrderNotice) -> str:
        return self.render_template("order_confirmation.txt.j2", self._context(notice))

    def receipt(self, notice: OrderNotice) -> str:
        context = self._context(notice)
        context.update(
            width=RECEIPT_WIDTH,
            banner=PAID_BANNER if notice.is_paid else UNPAID_BANNER,
            created_at=notice.created_at.strftime("%d/%m/%Y %H:%M"),
            subtotal=format_brl(notice.subtotal),
        )
        return self.render_template("receipt.txt.j2", context)

    def _context(self, notice: OrderNotice) -> Dict[str, Any]:
        scheduled_for = None
        if notice.reservation_date:
            scheduled_for = notice.reservation_date.strftime("%d/%m/%Y")
            if notice.pickup_time:
                scheduled_for = f"{scheduled_for} às {notice.pickup_time.strftime('%H:%M')}"

        return {
            "order_number": notice.order_number,
            "customer_name": notice.customer_name,
            "customer_phone": notice.customer_phone,
            "items": self._items(notice.items),
            "total": format_brl(notice.total),
            "discount": format_brl(notice.discount) if notice.discount > 0 else None,
            "delivery_fee": format_brl(notice.delivery_fee) if notice.delivery_fee > 0 else None,
            "payment_method": notice.payment_method,
            "change_for": format_brl(notice.change_for) if notice.change_for else None,
            "delivery": notice.delivery,
            "address": notice.address,
            "reference": notice.reference,
            "scheduled_for": scheduled_for,
            "notes": notice.notes,
        }

    @staticmethod
    def _items(items: List[NoticeItem]) -> List[Dict[str, Any]]:
        return [
            {
                "quantity": item.quantity,
                "name": item.name,
                "subtotal": format_brl(item.subtotal),
                "redeemed": item.redeemed,
            }
            for item in items
        ]


message_composer = MessageComposer()
