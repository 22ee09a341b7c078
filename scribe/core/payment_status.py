from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from scribe.models import PaymentRecord, PaymentStatus


STATUS_COLORS = {
    PaymentStatus.PAID: "success",
    PaymentStatus.PROCESSING: "processing",
    PaymentStatus.PENDING: "warning",
    PaymentStatus.FAILED: "error",
    PaymentStatus.CANCELLED: "default",
}

PaymentLike = Union[PaymentRecord, Mapping[str, Any], None]


def _fields(payment: PaymentLike):
    if isinstance(payment, PaymentRecord):
        return payment.status, payment.payment_date, payment.is_paid
    return payment.get("status"), payment.get("paymentDate"), payment.get("isPaid")


def normalize_payment_status(payment: PaymentLike) -> PaymentStatus:
    """Collapse a backend payment into the status the UI should show.

    A payment date or ``isPaid`` wins over whatever status the backend sent.
    ``processing`` is shown as paid: card payments sit in that state for a
    while after the customer has been charged. Keep this rule until product
    confirms otherwise.
    """
    if not payment:
        return PaymentStatus.PENDING

    status, payment_date, is_paid = _fields(payment)
    if payment_date or is_paid:
        return PaymentStatus.PAID

    raw = (status or "").strip().lower()
    if raw == PaymentStatus.PROCESSING.value:
        return PaymentStatus.PAID

    try:
        return PaymentStatus(raw)
    except ValueError:
        return PaymentStatus.PENDING


def payment_status_color(status: Optional[str]) -> str:
    try:
        key = PaymentStatus((status or "").lower())
    except ValueError:
        key = PaymentStatus.PENDING
    return STATUS_COLORS[key]
