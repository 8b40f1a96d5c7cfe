# req_core/payments/services.py
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from django.utils import timezone

from req_core.audit.services import LedgerService
from req_core.common.errors import AuthorizationError, ValidationError
from req_core.common.permissions import ROLE_ACCOUNTS, ROLE_ADMIN
from req_core.iam.identity import Actor
from req_core.requisitions import events
from req_core.requisitions.domain import PaymentEntry, Requisition
from req_core.requisitions.models import Action, PaymentStatus, Stage
from req_core.requisitions.store import RequisitionStore, atomic_write, retry_on_conflict

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def reconcile(total_cost: Decimal, payments: Iterable[PaymentEntry]) -> tuple[Decimal, str]:
    """
    (amount_paid, payment_status) derived from the payment ledger alone.
    """
    amount_paid = sum((p.amount for p in payments), ZERO).quantize(CENT)
    if amount_paid <= ZERO:
        return ZERO, PaymentStatus.UNPAID
    if amount_paid >= total_cost:
        return amount_paid, PaymentStatus.FULLY_PAID
    return amount_paid, PaymentStatus.PARTIALLY_PAID


def _parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        raise ValidationError("Payment amount must be a number.", details={"fields": {"amount": "Invalid number."}})
    if not amount.is_finite():
        raise ValidationError("Payment amount must be a number.", details={"fields": {"amount": "Invalid number."}})
    return amount.quantize(CENT)


class PaymentService:
    def __init__(self, *, store: RequisitionStore | None = None):
        self.store = store or RequisitionStore()

    @staticmethod
    def check_payable(requisition: Requisition, amount: Decimal) -> None:
        if requisition.stage != Stage.APPROVED:
            raise ValidationError(f"{requisition.id} is not approved; payments can only be recorded once approved.")
        if requisition.payment_status == PaymentStatus.FULLY_PAID:
            raise ValidationError(f"{requisition.id} is already fully paid. Nothing was recorded.")
        if amount <= ZERO:
            raise ValidationError(
                "Payment amount must be greater than zero. Nothing was recorded.",
                details={"fields": {"amount": "Must be > 0."}},
            )
        if amount > requisition.outstanding:
            raise ValidationError(
                f"Payment of {amount} exceeds the outstanding balance of {requisition.outstanding}. Nothing was recorded.",
                details={"fields": {"amount": f"Must be <= {requisition.outstanding}."}},
            )

    def record_payment(
        self,
        *,
        actor: Actor,
        requisition_id: str,
        amount: Any,
        paid_on: date | None = None,
        reference: str = "",
        receipt_name: str | None = None,
    ) -> Requisition:
        if actor.role not in (ROLE_ACCOUNTS, ROLE_ADMIN):
            raise AuthorizationError("Only accounts can record payments. Nothing was recorded.")

        amount = _parse_amount(amount)
        receipt_name = (receipt_name or "").strip()
        paid_on = paid_on or timezone.localdate()

        def write() -> Requisition:
            current = self.store.get(requisition_id)
            self.check_payable(current, amount)
            if receipt_name and current.attachment(receipt_name) is None:
                raise ValidationError(
                    f"Receipt {receipt_name!r} is not attached to {current.id}. Upload it first.",
                    details={"fields": {"receipt_name": "Unknown attachment."}},
                )

            payment = PaymentEntry(
                id=uuid.uuid4(),
                paid_on=paid_on,
                amount=amount,
                reference=(reference or "").strip(),
                recorded_by_id=actor.user_id,
                recorded_by_name=actor.display_name,
                receipt_name=receipt_name,
            )
            payments = current.payments + (payment,)
            amount_paid, status = reconcile(current.total_cost, payments)
            entry = LedgerService.entry(
                actor=actor,
                action=Action.PAYMENT_RECORDED,
                stage=current.stage,
                sequence=current.next_sequence,
                comment=f"Paid {amount} on {paid_on.isoformat()}" + (f" (ref {payment.reference})" if payment.reference else ""),
            )
            after = replace(
                current,
                payments=payments,
                amount_paid=amount_paid,
                payment_status=status,
                audit_trail=current.audit_trail + (entry,),
            )
            return self.store.replace(after, expected_version=current.version)

        saved = retry_on_conflict(lambda: atomic_write(write))
        logger.info(
            "Payment of %s recorded on %s by %s; paid %s of %s (%s)",
            amount,
            saved.id,
            actor.username,
            saved.amount_paid,
            saved.total_cost,
            saved.payment_status,
        )
        events.emit(
            events.PAYMENT_RECORDED,
            {
                "requisition_id": saved.id,
                "title": saved.title,
                "requester_id": saved.requester_id,
                "amount": str(amount),
                "amount_paid": str(saved.amount_paid),
                "outstanding": str(saved.outstanding),
                "payment_status": saved.payment_status,
            },
        )
        return saved
