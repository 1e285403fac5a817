"""
Despacho de notificaciones del pedido confirmado (fire-and-forget).

- build_notice: arma el OrderNotice desde el pedido persistido y sus líneas
- OrderNotifier: compone textos y encola mensaje de WhatsApp + impresión
"""

import logging
from typing import List

from comanda.core.config import settings
from comanda.modules.notifications.messages import message_composer
from comanda.modules.notifications.schemas import NoticeItem, OrderNotice
from comanda.modules.notifications.tasks import print_order_task, send_whatsapp_message_task
from comanda.modules.catalog.schemas import CartLine
from comanda.modules.orders.models import Order, PaymentMode

logger = logging.getLogger(__name__)


def build_notice(order: Order, lines: List[CartLine]) -> OrderNotice:
    address = None
    if order.delivery:
        parts = [order.delivery_address or ""]
        if order.delivery_number:
            parts[0] = f"{parts[0]}, {order.delivery_number}"
        if order.delivery_neighborhood:
            parts.append(order.delivery_neighborhood)
        address = " - ".join(p for p in parts if p)

    return OrderNotice(
        store_id=order.store_id,
        order_id=order.id,
        order_number=order.order_number,
        created_at=order.created_at,
        customer_name=order.customer_name,
        customer_phone=order.customer_phone,
        items=[
            NoticeItem(
                quantity=line.quantity,
                name=line.display_name,
                subtotal=line.monetary_subtotal,
                redeemed=line.redeemed_with_points
            )
            for line in lines
        ],
        subtotal=order.subtotal,
        discount=order.discount_amount,
        delivery_fee=order.delivery_fee,
        total=order.total,
        payment_method=order.payment_method,
        is_paid=order.payment_mode != PaymentMode.RESERVE,
        change_for=order.change_for,
        delivery=order.delivery,
        address=address,
        reference=order.delivery_reference,
        reservation_date=order.reservation_date,
        pickup_time=order.pickup_time,
        notes=order.notes
    )


class OrderNotifier:
    """Encola la confirmación del pedido; nunca bloquea el checkout."""

    def order_confirmed(self, notice: OrderNotice) -> None:
        if not settings.NOTIFICATIONS_ENABLED:
            logger.debug(f"Notifications disabled, skipping order {notice.order_number}")
            return

        if notice.customer_phone:
            send_whatsapp_message_task.delay(
                str(notice.store_id),
                notice.customer_phone,
                message_composer.confirmation_message(notice),
                notice.order_number
            )
        print_order_task.delay(str(notice.store_id), notice.order_number, message_composer.receipt(notice))
        logger.info(f"Confirmation and print job dispatched for order {notice.order_number}")


order_notifier = OrderNotifier()


def get_order_notifier() -> OrderNotifier:
    return order_notifier
