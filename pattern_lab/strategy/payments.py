"""
Strategy パターン — 決済方法

PaymentStrategy を実装したクラスを入れ替えるだけで、
呼び出し側 (PaymentProcessor) を変えずに決済方法を切り替えられる。

    方法             手数料
    ─────────────   ───────────────────
    CreditCard      2.5%
    Cash            なし
    PayPal          3.4% + 35
    BankTransfer    1000 (定額)

手数料は金額に上乗せされ、PaymentResult.total_amount が請求額になる。
"""

import asyncio
import logging
import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def generate_transaction_id(prefix: str) -> str:
    """PREFIX-XXXXXXXX (8桁の大文字16進) 形式の取引 ID"""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def is_valid_amount(amount: float) -> bool:
    return math.isfinite(amount) and amount > 0


@dataclass
class PaymentResult:
    success: bool
    transaction_id: str | None
    message: str
    amount: float
    fee: float
    payment_method: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def succeeded(cls, transaction_id: str, amount: float, fee: float, payment_method: str) -> "PaymentResult":
        return cls(True, transaction_id, "Payment completed successfully", amount, fee, payment_method)

    @classmethod
    def failed(cls, message: str, amount: float, payment_method: str) -> "PaymentResult":
        return cls(False, None, message, amount, 0.0, payment_method)

    @property
    def total_amount(self) -> float:
        return self.amount + self.fee

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "message": self.message,
            "amount": self.amount,
            "fee": self.fee,
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "timestamp": self.timestamp.isoformat(),
        }


class PaymentStrategy(ABC):
    """決済方法の共通インターフェース"""

    payment_method_name: str = ""

    # 外部決済の待ち時間を模擬する (秒)
    delay: float = 0.0

    @abstractmethod
    def calculate_fee(self, amount: float) -> float:
        ...

    @abstractmethod
    def is_payment_possible(self, amount: float) -> bool:
        ...

    @abstractmethod
    async def process_payment(self, amount: float) -> PaymentResult:
        ...

    def to_dict(self) -> dict:
        return {"payment_method": self.payment_method_name}

    def _failed(self, message: str, amount: float) -> PaymentResult:
        logger.warning("[%s] payment rejected: %s", self.payment_method_name, message)
        return PaymentResult.failed(message, amount, self.payment_method_name)

    async def _wait(self) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)


# ── 実装 ────────────────────────────────────────


class CreditCardPayment(PaymentStrategy):
    FEE_RATE = 0.025

    payment_method_name = "Credit Card"

    def __init__(
        self,
        card_number: str,
        holder_name: str,
        cvv: str,
        expiry_date: str,
        credit_limit: float,
        delay: float = 0.0,
    ) -> None:
        if not holder_name.strip():
            raise ValueError("card holder name is required")
        if credit_limit < 0:
            raise ValueError("credit limit must not be negative")

        self.card_number = card_number
        self.holder_name = holder_name.strip()
        self.cvv = cvv
        self.expiry_date = expiry_date
        self.credit_limit = credit_limit
        self.delay = delay

    @property
    def masked_card_number(self) -> str:
        digits = self.card_number.replace(" ", "").replace("-", "")
        if len(digits) < 4:
            return "****"
        return "**** **** **** " + digits[-4:]

    def calculate_fee(self, amount: float) -> float:
        return amount * self.FEE_RATE

    def is_valid_card(self) -> bool:
        return (
            bool(self.card_number.strip())
            and bool(self.holder_name.strip())
            and bool(self.expiry_date.strip())
            and len(self.cvv) == 3
            and self.cvv.isdigit()
        )

    def is_payment_possible(self, amount: float) -> bool:
        return is_valid_amount(amount) and amount + self.calculate_fee(amount) <= self.credit_limit

    async def process_payment(self, amount: float) -> PaymentResult:
        logger.info("[Credit Card] payment started: card=%s amount=%.2f", self.masked_card_number, amount)

        if not self.is_valid_card():
            return self._failed("Invalid credit card information", amount)
        if not self.is_payment_possible(amount):
            return self._failed(f"Credit limit exceeded (limit: {self.credit_limit:.2f})", amount)

        await self._wait()
        fee = self.calculate_fee(amount)
        self.credit_limit -= amount + fee
        return PaymentResult.succeeded(generate_transaction_id("CC"), amount, fee, self.payment_method_name)

    def to_dict(self) -> dict:
        return {
            "payment_method": self.payment_method_name,
            "card_number": self.masked_card_number,
            "holder_name": self.holder_name,
            "remaining_limit": self.credit_limit,
        }


class CashPayment(PaymentStrategy):
    payment_method_name = "Cash"

    def __init__(self, available_cash: float, delay: float = 0.0) -> None:
        if available_cash < 0:
            raise ValueError("available cash must not be negative")
        self.available_cash = available_cash
        self.delay = delay

    def calculate_fee(self, amount: float) -> float:
        return 0.0

    def is_payment_possible(self, amount: float) -> bool:
        return is_valid_amount(amount) and amount <= self.available_cash

    def add_cash(self, amount: float) -> None:
        if amount <= 0:
            raise ValueError("added cash must be positive")
        self.available_cash += amount

    async def process_payment(self, amount: float) -> PaymentResult:
        logger.info("[Cash] payment started: amount=%.2f available=%.2f", amount, self.available_cash)

        if not is_valid_amount(amount):
            return self._failed("Invalid payment amount", amount)
        if not self.is_payment_possible(amount):
            return self._failed("Insufficient cash", amount)

        await self._wait()
        self.available_cash -= amount
        return PaymentResult.succeeded(generate_transaction_id("CASH"), amount, 0.0, self.payment_method_name)

    def to_dict(self) -> dict:
        return {"payment_method": self.payment_method_name, "available_cash": self.available_cash}


class PayPalPayment(PaymentStrategy):
    FEE_RATE = 0.034
    FIXED_FEE = 35.0

    payment_method_name = "PayPal"

    def __init__(
        self,
        email: str,
        password: str,
        balance: float,
        verified: bool,
        delay: float = 0.0,
    ) -> None:
        self.email = email
        self.password = password
        self.balance = balance
        self.verified = verified
        self.delay = delay

    def calculate_fee(self, amount: float) -> float:
        return amount * self.FEE_RATE + self.FIXED_FEE

    def is_payment_possible(self, amount: float) -> bool:
        return (
            self.verified
            and is_valid_amount(amount)
            and amount + self.calculate_fee(amount) <= self.balance
        )

    def authenticate(self) -> bool:
        return "@" in self.email and bool(self.password)

    async def process_payment(self, amount: float) -> PaymentResult:
        logger.info("[PayPal] payment started: account=%s amount=%.2f", self.email, amount)

        if not self.is_payment_possible(amount):
            return self._failed("Insufficient PayPal balance or unverified account", amount)
        if not self.authenticate():
            return self._failed("PayPal authentication failed", amount)

        await self._wait()
        fee = self.calculate_fee(amount)
        self.balance -= amount + fee
        return PaymentResult.succeeded(generate_transaction_id("PP"), amount, fee, self.payment_method_name)

    def to_dict(self) -> dict:
        return {
            "payment_method": self.payment_method_name,
            "email": self.email,
            "balance": self.balance,
            "verified": self.verified,
        }


class BankTransferPayment(PaymentStrategy):
    FIXED_FEE = 1000.0
    DAILY_LIMIT = 5_000_000.0

    payment_method_name = "Bank Transfer"

    def __init__(
        self,
        bank_name: str,
        account_number: str,
        account_holder: str,
        balance: float,
        pin: str,
        delay: float = 0.0,
    ) -> None:
        if not bank_name.strip():
            raise ValueError("bank name is required")
        if not account_number.strip():
            raise ValueError("account number is required")
        if not account_holder.strip():
            raise ValueError("account holder is required")
        if balance < 0:
            raise ValueError("balance must not be negative")
        if not self.is_valid_pin(pin):
            raise ValueError("PIN must be 6 digits")

        self.bank_name = bank_name.strip()
        self.account_number = account_number
        self.account_holder = account_holder.strip()
        self.balance = balance
        self.pin = pin
        self.delay = delay

    @property
    def masked_account_number(self) -> str:
        digits = self.account_number.replace("-", "")
        if len(digits) < 4:
            return "***"
        return "***-***-" + digits[-4:]

    def calculate_fee(self, amount: float) -> float:
        return self.FIXED_FEE

    @staticmethod
    def is_valid_pin(pin: str) -> bool:
        return len(pin) == 6 and pin.isascii() and pin.isdigit()

    def is_payment_possible(self, amount: float) -> bool:
        return (
            is_valid_amount(amount)
            and amount <= self.DAILY_LIMIT
            and amount + self.calculate_fee(amount) <= self.balance
        )

    async def process_payment(self, amount: float) -> PaymentResult:
        logger.info(
            "[Bank Transfer] payment started: bank=%s account=%s amount=%.2f",
            self.bank_name, self.masked_account_number, amount,
        )

        if amount > self.DAILY_LIMIT:
            return self._failed(f"Daily transfer limit exceeded (limit: {self.DAILY_LIMIT:.0f})", amount)
        if not self.is_payment_possible(amount):
            return self._failed(f"Insufficient balance (balance: {self.balance:.2f})", amount)

        await self._wait()
        fee = self.calculate_fee(amount)
        self.balance -= amount + fee
        return PaymentResult.succeeded(generate_transaction_id("BT"), amount, fee, self.payment_method_name)

    def to_dict(self) -> dict:
        return {
            "payment_method": self.payment_method_name,
            "bank_name": self.bank_name,
            "account_number": self.masked_account_number,
            "account_holder": self.account_holder,
            "balance": self.balance,
            "daily_limit": self.DAILY_LIMIT,
        }
