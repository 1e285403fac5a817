"""
Tareas asíncronas de Celery para notificaciones del pedido.
"""
import logging

import redis
import requests

from comanda.core.celery import celery_app
from comanda.core.config import settings

logger = logging.getLogger(__name__)

PRINT_QUEUE_KEY = "print-queue:{store_id}"


@celery_app.task(bind=True, max_retries=3)
def send_whatsapp_message_task(self, store_id: str, phone: str, message: str, order_number: str):
    """
    Envía el mensaje de confirmación por el gateway de WhatsApp.
    """
    url = f"{settings.WHATSAPP_GATEWAY_URL.rstrip('/')}/messages"
    headers = {
        "Authorization": f"Bearer {settings.WHATSAPP_GATEWAY_TOKEN}",
        "Content-Type": "application/json",
    }
    payload = {"store_id": store_id, "phone": f"55{phone}", "message": message}

    try:
        response = requests.post(url, json=payload, headers=headers, timeout=settings.WHATSAPP_GATEWAY_TIMEOUT)
        response.raise_for_status()
        logger.info(f"WhatsApp confirmation for order {order_number} sent to {phone}")
        return {"status": "success", "order_number": order_number}

    except requests.RequestException as exc:
        logger.error(f"WhatsApp confirmation for order {order_number} failed: {str(exc)}")

        # Retry with exponential backoff
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        return {"status": "failed", "error": str(exc), "order_number": order_number}


@celery_app.task(bind=True, max_retries=3)
def print_order_task(self, store_id: str, order_number: str, receipt: str):
    """
    Publica el comprobante en la cola de impresión de la tienda.
    El agente de impresión local consume la lista de Redis.
    """
    try:
        client = redis.Redis.from_url(settings.redis_url)
        client.rpush(PRINT_QUEUE_KEY.format(store_id=store_id), receipt)
        logger.info(f"Receipt for order {order_number} queued for printing")
        return {"status": "queued", "order_number": order_number}

    except redis.RedisError as exc:
        logger.error(f"Print job for order {order_number} failed: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=10 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc), "order_number": order_number}
