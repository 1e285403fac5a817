"""
Reloj de pared de la tienda.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from comanda.core.config import settings


def store_now() -> datetime:
    return datetime.now(ZoneInfo(settings.STORE_TIMEZONE))
