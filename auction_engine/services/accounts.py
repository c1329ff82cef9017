"""
Account store helpers

Balances are only touched inside the transaction that creates or settles an
order, so these helpers take the caller's session and never commit.
"""
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from auction_engine.models import Account

ZERO = Decimal("0")


async def get_balance(session: AsyncSession, user_id: int) -> Decimal:
    """Spendable balance; an unknown user has nothing"""
    account = await session.get(Account, user_id)
    if account is None:
        return ZERO
    return Decimal(account.balance)


async def get_or_create_account(session: AsyncSession, user_id: int) -> Account:
    account = await session.get(Account, user_id)
    if account is None:
        account = Account(user_id=user_id, balance=ZERO, pending_balance=ZERO)
        session.add(account)
    return account


async def credit_pending(session: AsyncSession, user_id: int, amount: Decimal) -> Account:
    """Earmark seller proceeds for an order awaiting payment"""
    account = await get_or_create_account(session, user_id)
    account.pending_balance = Decimal(account.pending_balance) + amount
    return account


async def reverse_pending(session: AsyncSession, user_id: int, amount: Decimal) -> Account:
    """Undo `credit_pending` after a failed or abandoned payment"""
    account = await get_or_create_account(session, user_id)
    account.pending_balance = Decimal(account.pending_balance) - amount
    return account


async def release_pending(session: AsyncSession, user_id: int, amount: Decimal) -> Account:
    """Move earmarked proceeds into the spendable balance"""
    account = await get_or_create_account(session, user_id)
    account.pending_balance = Decimal(account.pending_balance) - amount
    account.balance = Decimal(account.balance) + amount
    return account
