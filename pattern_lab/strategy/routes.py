"""
Strategy パターン — HTTP エンドポイント (/api/strategy)
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from .payments import (
    BankTransferPayment,
    CashPayment,
    CreditCardPayment,
    PaymentResult,
    PaymentStrategy,
    PayPalPayment,
)
from .processor import PaymentProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/strategy", tags=["strategy"])


def get_processor(request: Request) -> PaymentProcessor:
    return request.app.state.payment_processor


# ── Request Models ───────────────────────────────

# 金額は有限値のみ (NaN / Infinity は 422)
Money = Annotated[float, Field(allow_inf_nan=False)]


class CreditCardRequest(BaseModel):
    amount: Money
    card_number: str
    holder_name: str
    cvv: str
    expiry_date: str
    credit_limit: Money = 1_000_000


class CashRequest(BaseModel):
    amount: Money
    available_cash: Money = 500_000


class PayPalRequest(BaseModel):
    amount: Money
    email: str
    password: str
    balance: Money = 300_000
    verified: bool = True


class BankTransferRequest(BaseModel):
    amount: Money
    bank_name: str
    account_number: str
    account_holder: str
    pin: str
    balance: Money = 2_000_000


class FeeRequest(BaseModel):
    amount: Annotated[float, Field(gt=0, allow_inf_nan=False)]
    payment_method: str
    card_number: str = ""
    holder_name: str = ""
    cvv: str = ""
    expiry_date: str = ""
    credit_limit: Money = 1_000_000
    available_cash: Money = 500_000
    email: str = ""
    password: str = ""
    verified: bool = True
    bank_name: str = ""
    account_number: str = ""
    account_holder: str = ""
    pin: str = ""
    balance: Money = 2_000_000


# ── Payment Endpoints ────────────────────────────


@router.post("/payment/creditcard")
async def pay_credit_card(req: CreditCardRequest, processor: PaymentProcessor = Depends(get_processor)):
    strategy = _build(
        CreditCardPayment, req.card_number, req.holder_name, req.cvv, req.expiry_date, req.credit_limit
    )
    return await _pay(processor, strategy, req.amount)


@router.post("/payment/cash")
async def pay_cash(req: CashRequest, processor: PaymentProcessor = Depends(get_processor)):
    strategy = _build(CashPayment, req.available_cash)
    return await _pay(processor, strategy, req.amount)


@router.post("/payment/paypal")
async def pay_paypal(req: PayPalRequest, processor: PaymentProcessor = Depends(get_processor)):
    strategy = _build(PayPalPayment, req.email, req.password, req.balance, req.verified)
    return await _pay(processor, strategy, req.amount)


@router.post("/payment/banktransfer")
async def pay_bank_transfer(req: BankTransferRequest, processor: PaymentProcessor = Depends(get_processor)):
    strategy = _build(
        BankTransferPayment, req.bank_name, req.account_number, req.account_holder, req.balance, req.pin
    )
    return await _pay(processor, strategy, req.amount)


@router.post("/calculate-fee")
async def calculate_fee(req: FeeRequest):
    strategy = _strategy_for(req)
    if strategy is None:
        raise HTTPException(400, f"Unsupported payment method: {req.payment_method}")

    fee = strategy.calculate_fee(req.amount)
    return {
        "amount": req.amount,
        "fee": fee,
        "total_amount": req.amount + fee,
        "payment_method": strategy.payment_method_name,
        "payment_possible": strategy.is_payment_possible(req.amount),
    }


# ── History / Statistics ─────────────────────────


@router.get("/payment-history")
async def payment_history(processor: PaymentProcessor = Depends(get_processor)):
    return {
        "history": [r.to_dict() for r in processor.history],
        "statistics": processor.statistics(),
        "total_amount": processor.total_amount,
        "total_fees": processor.total_fees,
    }


@router.delete("/payment-history")
async def clear_payment_history(processor: PaymentProcessor = Depends(get_processor)):
    processor.clear_history()
    return {"cleared": True}


@router.get("/statistics")
async def statistics(processor: PaymentProcessor = Depends(get_processor)):
    return processor.statistics()


@router.post("/demo")
async def run_demo(processor: PaymentProcessor = Depends(get_processor)):
    """4 種類の決済方法を順に切り替えて 1 件ずつ決済する"""
    logger.info("Running strategy pattern demo")
    demo: list[tuple[str, PaymentStrategy, float]] = [
        ("credit_card", CreditCardPayment("1234-5678-9012-3456", "Kim", "123", "12/25", 1_000_000), 50_000),
        ("cash", CashPayment(100_000), 30_000),
        ("paypal", PayPalPayment("demo@example.com", "password", 200_000, True), 40_000),
        ("bank_transfer", BankTransferPayment("Demo Bank", "123-456-789012", "Lee", 500_000, "123456"), 80_000),
    ]

    results = {}
    for key, strategy, amount in demo:
        processor.set_strategy(strategy)
        result = await processor.process_payment(amount)
        results[key] = result.to_dict()

    return {"results": results, "statistics": processor.statistics()}


async def _pay(processor: PaymentProcessor, strategy: PaymentStrategy, amount: float) -> dict:
    processor.set_strategy(strategy)
    result: PaymentResult = await processor.process_payment(amount)
    response = result.to_dict()
    response["account"] = strategy.to_dict()
    return response


def _build(strategy_class: type[PaymentStrategy], *args) -> PaymentStrategy:
    """口座情報が不正なら 400"""
    try:
        return strategy_class(*args)
    except ValueError as e:
        raise HTTPException(400, str(e)) from e


def _strategy_for(req: FeeRequest) -> PaymentStrategy | None:
    method = req.payment_method.lower()
    if method == "creditcard":
        return _build(CreditCardPayment, req.card_number, req.holder_name, req.cvv, req.expiry_date, req.credit_limit)
    if method == "cash":
        return _build(CashPayment, req.available_cash)
    if method == "paypal":
        return _build(PayPalPayment, req.email, req.password, req.balance, req.verified)
    if method == "banktransfer":
        return _build(
            BankTransferPayment, req.bank_name, req.account_number, req.account_holder, req.balance, req.pin
        )
    return None
