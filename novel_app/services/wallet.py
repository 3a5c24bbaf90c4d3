"""Token wallet helpers.

Debits are a single conditional UPDATE so that two concurrent requests can
never push a balance below zero. None of these helpers commit; the caller
owns the transaction.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import User, Wallet
from .errors import InsufficientBalanceError


def get_balance(user_id: int) -> int:
    wallet = Wallet.query.filter_by(user_id=user_id).first()
    if wallet is None:
        return 0
    return wallet.balance


def ensure_balance(user_id: int, cost: int) -> int:
    """Raise :class:`InsufficientBalanceError` unless the wallet covers ``cost``."""

    balance = get_balance(user_id)
    if balance < cost:
        raise InsufficientBalanceError(
            f"Not enough tokens: this request needs at least {cost}, the wallet holds {balance}."
        )
    return balance


def debit_wallet(user_id: int, cost: int) -> None:
    if cost <= 0:
        return
    result = db.session.execute(
        update(Wallet)
        .where(Wallet.user_id == user_id, Wallet.balance >= cost)
        .values(balance=Wallet.balance - cost)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientBalanceError(f"Not enough tokens to pay for this generation ({cost} required).")
    current_app.logger.info("Debited %s token(s) from wallet of user %s.", cost, user_id)


def credit_wallet(user_id: int, amount: int) -> Wallet:
    if amount < 0:
        raise ValueError("amount must not be negative")
    if db.session.get(User, user_id) is None:
        raise LookupError(f"User {user_id} does not exist.")

    wallet = Wallet.query.filter_by(user_id=user_id).first()
    if wallet is None:
        wallet = Wallet(user_id=user_id, balance=0)
        db.session.add(wallet)
    wallet.balance = (wallet.balance or 0) + amount
    db.session.flush()
    return wallet
