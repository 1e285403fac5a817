"""
Tests de notificaciones del pedido

- Texto de confirmación por WhatsApp y comprobante de impresión
- Despacho: desactivado no encola nada; activado encola mensaje e impresión
"""

from datetime import date, datetime, time
from decimal import Decimal
from uuid import uuid4

from comanda.core.config import settings
from comanda.modules.notifications import service as notifications_service
from comanda.modules.notifications.messages import message_composer
from comanda.modules.notifications.schemas import NoticeItem, OrderNotice
from comanda.modules.notifications.service import OrderNotifier


def notice(**overrides):
    data = dict(
        store_id=uuid4(),
        order_id=uuid4(),
        order_number="WA-000042",
        created_at=datetime(2026, 3, 10, 12, 30),
        customer_name="Maria",
        customer_phone="11987654321",
        items=[
            NoticeItem(quantity=2, name="Açaí (500ml)", subtotal=Decimal("36.00")),
            NoticeItem(quantity=1, name="Cookie", subtotal=Decimal("0"), redeemed=True),
        ],
        subtotal=Decimal("36.00"),
        total=Decimal("1234.50"),
        payment_method="Fidelidade + PIX",
    )
    data.update(overrides)
    return OrderNotice(**data)


class RecordingTask:
    def __init__(self):
        self.calls = []

    def delay(self, *args):
        self.calls.append(args)


class TestConfirmationMessage:

    def test_lists_items_and_total(self):
        text = message_composer.confirmation_message(notice())
        assert "*Pedido:* WA-000042" in text
        assert "*Total:* R$ 1.234,50" in text
        assert "• 2x Açaí (500ml) - R$ 36,00" in text
        assert "• 1x Cookie (resgate com pontos)" in text
        assert "*Retirada na loja*" in text

    def test_delivery_with_change(self):
        text = message_composer.confirmation_message(notice(
            delivery=True,
            address="Rua das Flores, 10 - Centro",
            delivery_fee=Decimal("8"),
            change_for=Decimal("50"),
            payment_method="Dinheiro"
        ))
        assert "*Entrega:* Rua das Flores, 10 - Centro" in text
        assert "*Taxa de entrega:* R$ 8,00" in text
        assert "*Troco para:* R$ 50,00" in text

    def test_scheduled_pickup(self):
        text = message_composer.confirmation_message(
            notice(reservation_date=date(2026, 3, 12), pickup_time=time(18, 30))
        )
        assert "*Agendado para:* 12/03/2026 às 18:30" in text


class TestReceipt:

    def test_paid_receipt(self):
        text = message_composer.receipt(notice())
        lines = text.splitlines()
        assert lines[0] == "=" * 32
        assert "PEDIDO WA-000042" in lines[1]
        assert "10/03/2026 12:30" in lines[2]
        assert "RESGATE" in text
        assert "PAGO" in text
        assert "A PAGAR" not in text

    def test_reserve_receipt_is_unpaid(self):
        text = message_composer.receipt(notice(is_paid=False, payment_method="Reserva"))
        assert "A PAGAR" in text

    def test_lines_fit_printer_width(self):
        text = message_composer.receipt(notice(discount=Decimal("3.60")))
        assert "Desconto:" in text
        assert all(len(line) <= 32 for line in text.splitlines() if not line.startswith(("Pagamento", "1x", "2x")))


class TestOrderNotifier:

    def test_disabled_dispatches_nothing(self, monkeypatch):
        whatsapp, printer = RecordingTask(), RecordingTask()
        monkeypatch.setattr(settings, "NOTIFICATIONS_ENABLED", False)
        monkeypatch.setattr(notifications_service, "send_whatsapp_message_task", whatsapp)
        monkeypatch.setattr(notifications_service, "print_order_task", printer)

        OrderNotifier().order_confirmed(notice())

        assert whatsapp.calls == []
        assert printer.calls == []

    def test_enabled_queues_message_and_print(self, monkeypatch):
        whatsapp, printer = RecordingTask(), RecordingTask()
        monkeypatch.setattr(settings, "NOTIFICATIONS_ENABLED", True)
        monkeypatch.setattr(notifications_service, "send_whatsapp_message_task", whatsapp)
        monkeypatch.setattr(notifications_service, "print_order_task", printer)

        sent = notice()
        OrderNotifier().order_confirmed(sent)

        store_id, phone, message, order_number = whatsapp.calls[0]
        assert store_id == str(sent.store_id)
        assert phone == "11987654321"
        assert "WA-000042" in message
        assert order_number == "WA-000042"
        assert printer.calls[0][1] == "WA-000042"

    def test_walk_in_without_phone_only_prints(self, monkeypatch):
        whatsapp, printer = RecordingTask(), RecordingTask()
        monkeypatch.setattr(settings, "NOTIFICATIONS_ENABLED", True)
        monkeypatch.setattr(notifications_service, "send_whatsapp_message_task", whatsapp)
        monkeypatch.setattr(notifications_service, "print_order_task", printer)

        OrderNotifier().order_confirmed(notice(customer_phone=None, customer_name=None))

        assert whatsapp.calls == []
        assert len(printer.calls) == 1
