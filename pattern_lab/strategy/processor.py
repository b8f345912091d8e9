"""
Strategy パターン — Context

PaymentProcessor は現在の PaymentStrategy に決済を委譲し、
結果 (成功・失敗とも) を履歴に積む。
"""

import logging

from .payments import PaymentResult, PaymentStrategy, is_valid_amount

logger = logging.getLogger(__name__)

NO_STRATEGY = "none"


class PaymentProcessor:
    def __init__(self) -> None:
        self.strategy: PaymentStrategy | None = None
        self._history: list[PaymentResult] = []

    def set_strategy(self, strategy: PaymentStrategy) -> None:
        if strategy is None:
            raise ValueError("payment strategy must not be None")
        self.strategy = strategy
        logger.info("Payment strategy changed: %s", strategy.payment_method_name)

    @property
    def current_payment_method(self) -> str:
        return self.strategy.payment_method_name if self.strategy else NO_STRATEGY

    async def process_payment(self, amount: float) -> PaymentResult:
        if self.strategy is None:
            logger.error("No payment strategy set")
            return self._record(PaymentResult.failed("No payment method selected", amount, NO_STRATEGY))

        method = self.strategy.payment_method_name
        if not is_valid_amount(amount):
            logger.error("Invalid payment amount: %s", amount)
            return self._record(PaymentResult.failed("Invalid payment amount", amount, method))

        logger.info("Processing payment: method=%s amount=%.2f", method, amount)
        try:
            result = await self.strategy.process_payment(amount)
        except Exception as e:
            logger.exception("Unexpected error while processing payment")
            result = PaymentResult.failed(f"Payment failed due to a system error: {e}", amount, method)

        if result.success:
            logger.info("Payment succeeded: tx=%s total=%.2f", result.transaction_id, result.total_amount)
        else:
            logger.warning("Payment failed: %s", result.message)
        return self._record(result)

    def can_process_payment(self, amount: float) -> bool:
        if self.strategy is None or not is_valid_amount(amount):
            return False
        return self.strategy.is_payment_possible(amount)

    def calculate_fee(self, amount: float) -> float:
        if not is_valid_amount(amount):
            raise ValueError(f"invalid amount for fee calculation: {amount}")
        if self.strategy is None:
            return 0.0
        return self.strategy.calculate_fee(amount)

    # ── 履歴・統計 ──────────────────────────────

    @property
    def history(self) -> list[PaymentResult]:
        return list(self._history)

    @property
    def successful_payments(self) -> list[PaymentResult]:
        return [r for r in self._history if r.success]

    @property
    def failed_payments(self) -> list[PaymentResult]:
        return [r for r in self._history if not r.success]

    @property
    def total_amount(self) -> float:
        return sum(r.amount for r in self.successful_payments)

    @property
    def total_fees(self) -> float:
        return sum(r.fee for r in self.successful_payments)

    def clear_history(self) -> None:
        self._history.clear()
        logger.info("Payment history cleared")

    def statistics(self) -> dict:
        total = len(self._history)
        succeeded = len(self.successful_payments)
        return {
            "total_transactions": total,
            "successful_transactions": succeeded,
            "failed_transactions": total - succeeded,
            "total_amount": self.total_amount,
            "total_fees": self.total_fees,
            "success_rate": succeeded / total * 100 if total else 0.0,
        }

    def _record(self, result: PaymentResult) -> PaymentResult:
        self._history.append(result)
        return result
