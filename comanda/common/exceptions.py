"""
Excepciones de dominio del flujo de finalización de pedidos.

Jerarquía:
- ComandaError: base, con código estable y status HTTP
- CheckoutValidationError: datos inválidos, nada fue escrito
- PreconditionConflictError: el estado compartido cambió antes de escribir
- OrderPersistenceError: la inserción del pedido falló (fatal)

Los routers no las capturan: el handler registrado en main.py las
convierte en respuestas JSON {"detail", "code"}.
"""


class ComandaError(Exception):
    """Base exception for all domain errors."""
    status_code = 500

    def __init__(self, code: str, message: str, payload: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv["detail"] = self.message
        rv["code"] = self.code
        return rv


class CheckoutValidationError(ComandaError):
    """Validation failure detected before any write."""
    status_code = 422


class PreconditionConflictError(ComandaError):
    """Shared state no longer allows the operation (register closed, coupon exhausted...)."""
    status_code = 409


class OrderPersistenceError(ComandaError):
    """The order row could not be written; no downstream step ran."""
    status_code = 500

    def __init__(self, message: str = "Não foi possível registrar o pedido", payload: dict | None = None):
        super().__init__("order_persistence_failed", message, payload)
