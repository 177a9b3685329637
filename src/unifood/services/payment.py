import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    ok: bool
    payment_ref: str | None = None
    reason: str | None = None

    @classmethod
    def approved(cls, payment_ref: str) -> "PaymentResult":
        return cls(ok=True, payment_ref=payment_ref)

    @classmethod
    def failed(cls, reason: str) -> "PaymentResult":
        return cls(ok=False, reason=reason)


class PaymentGateway(Protocol):
    async def authorize(
        self, amount: Decimal, currency: str, payer_ref: str, method_ref: str
    ) -> PaymentResult: ...


class DemoPaymentGateway:
    """
    Шлюз для демо-режима: одобряет любой платёж с положительной суммой.
    Ссылка на платёж вида pay_<hex>.
    """

    async def authorize(self, amount: Decimal, currency: str, payer_ref: str, method_ref: str) -> PaymentResult:
        if amount <= 0:
            return PaymentResult.failed("invalid_amount")
        if not method_ref:
            return PaymentResult.failed("missing_payment_method")
        payment_ref = f"pay_{uuid.uuid4().hex[:16]}"
        logger.info("Demo payment %s authorized: %s %s by %s via %s", payment_ref, amount, currency, payer_ref, method_ref)
        return PaymentResult.approved(payment_ref)
