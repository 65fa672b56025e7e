"""Account store: creation, atomic balance changes and the transaction log."""

import secrets
from decimal import Decimal
from typing import Any

from w2e.core.exceptions import BadRequestError, InsufficientBalanceError, InvalidAmount, NotFoundError
from w2e.core.logging import get_logger
from w2e.models import Account, Category, Transaction
from w2e.models.money import AmountOutOfRange, quantize
from w2e.store.base import DuplicateKeyError, LedgerSession, LedgerStore

log = get_logger(__name__)

CODE_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
CODE_LENGTH = 8
MIN_CODE_LENGTH = 5
CODE_ATTEMPTS = 10

CREDIT_CATEGORIES = frozenset(c for c in Category if c is not Category.WITHDRAWAL_DEBIT)


def generate_referral_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


async def resolve_referral_code(session: LedgerSession, code: str | None) -> Account | None:
    """Invite-link code -> inviting account, or None for anything unusable."""
    code = (code or "").strip().upper()
    if len(code) < MIN_CODE_LENGTH:
        return None
    return await session.get_account_by_referral_code(code)


async def get_or_create(
    store: LedgerStore,
    external_id: int,
    username: str | None = None,
    first_name: str | None = None,
    referred_by_code: str | None = None,
) -> Account:
    """
    Look up by external id, refreshing display fields; create with balance 0 if absent.
    referred_by is only ever set here, at creation, and only to a code that resolves.
    """
    if external_id <= 0:
        raise BadRequestError("Invalid user id")

    async def _existing(session: LedgerSession) -> Account | None:
        acc = await session.get_account_by_external_id(external_id)
        if acc and (username is not None or first_name is not None):
            if (acc.username, acc.first_name) != (username, first_name):
                await session.update_profile(acc.id, username, first_name)
                acc.username, acc.first_name = username, first_name
        return acc

    account = await store.atomic(_existing)
    if account:
        return account

    for _ in range(CODE_ATTEMPTS):
        code = generate_referral_code()

        async def _create(session: LedgerSession) -> Account:
            inviter = await resolve_referral_code(session, referred_by_code)
            new = Account(
                external_id=external_id,
                username=username,
                first_name=first_name,
                referral_code=code,
                referred_by=inviter.referral_code if inviter else None,
            )
            await session.insert_account(new)
            return new

        try:
            account = await store.atomic(_create)
        except DuplicateKeyError as e:
            if e.key == "referral_code":
                continue
            # Lost a creation race for the same user; theirs wins.
            account = await store.atomic(_existing)
            if account is None:
                raise
            return account
        log.info(
            "account_created",
            account_id=account.id,
            external_id=external_id,
            referred_by=account.referred_by,
        )
        return account
    raise BadRequestError("Could not generate unique referral code")


async def get_account(store: LedgerStore, account_id: str) -> Account:
    async def _get(session: LedgerSession) -> Account | None:
        return await session.get_account(account_id)

    account = await store.atomic(_get)
    if not account:
        raise NotFoundError("Account not found")
    return account


def _positive_amount(amount: Decimal) -> Decimal:
    try:
        amount = quantize(amount)
    except AmountOutOfRange as e:
        raise InvalidAmount(str(e)) from e
    if amount <= 0:
        raise InvalidAmount()
    return amount


async def credit(
    session: LedgerSession,
    account_id: str,
    amount: Decimal,
    category: Category,
    metadata: dict[str, Any] | None = None,
) -> tuple[Transaction, Account]:
    """Increase balance and total_earned, append the log entry. Caller owns the atomic unit."""
    amount = _positive_amount(amount)
    if category not in CREDIT_CATEGORIES:
        raise BadRequestError(f"Invalid credit category: {category}")
    account = await session.apply_balance_change(account_id, amount, earned=amount)
    if account is None:
        raise NotFoundError("Account not found")
    txn = Transaction(account_id=account_id, amount=amount, category=category, metadata=metadata or {})
    await session.insert_transaction(txn)
    log.info("credit_applied", account_id=account_id, amount=str(amount), category=category.value)
    return txn, account


async def debit(
    session: LedgerSession,
    account_id: str,
    amount: Decimal,
    metadata: dict[str, Any] | None = None,
) -> tuple[Transaction, Account]:
    """Decrease balance; refuses to go negative and then writes nothing."""
    amount = _positive_amount(amount)
    account = await session.apply_balance_change(account_id, -amount)
    if account is None:
        current = await session.get_account(account_id)
        if current is None:
            raise NotFoundError("Account not found")
        raise InsufficientBalanceError(details={"balance": str(current.balance), "requested": str(amount)})
    txn = Transaction(
        account_id=account_id,
        amount=-amount,
        category=Category.WITHDRAWAL_DEBIT,
        metadata=metadata or {},
    )
    await session.insert_transaction(txn)
    log.info("debit_applied", account_id=account_id, amount=str(amount))
    return txn, account


async def increment_task_count(session: LedgerSession, account_id: str) -> Account:
    account = await session.apply_balance_change(account_id, Decimal("0"), tasks=1)
    if account is None:
        raise NotFoundError("Account not found")
    return account


async def list_transactions(store: LedgerStore, account_id: str, limit: int = 50, offset: int = 0) -> list[Transaction]:
    async def _list(session: LedgerSession) -> list[Transaction]:
        return await session.list_transactions(account_id, limit, offset)

    return await store.atomic(_list)
