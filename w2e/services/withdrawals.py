"""Withdrawal ledger: pending -> processed, one pending request per account."""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from w2e.core.exceptions import (
    BadRequestError,
    BelowMinimum,
    DuplicatePending,
    DuplicateRequest,
    InsufficientBalanceError,
    InvalidAddress,
    InvalidAmount,
    NotFoundError,
    NotFoundOrNotPending,
)
from w2e.core.logging import get_logger
from w2e.models import WithdrawalRequest
from w2e.models.money import AmountOutOfRange, quantize
from w2e.services import accounts as accounts_service
from w2e.services import idempotency
from w2e.services.rewards import RewardPolicy
from w2e.store.base import DuplicateKeyError, LedgerSession, LedgerStore

log = get_logger(__name__)

ENDPOINT = "withdraw"
DEFAULT_NETWORK = "BSC"

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
ADDRESS_PATTERNS = {
    "BSC": EVM_ADDRESS_RE,
    "ETH": EVM_ADDRESS_RE,
    "POLYGON": EVM_ADDRESS_RE,
    "ARB": EVM_ADDRESS_RE,
}


@dataclass
class WithdrawalResult:
    withdrawal: WithdrawalRequest
    balance: Decimal


def normalize_network(network: str | None) -> str:
    return (network or DEFAULT_NETWORK).strip().upper() or DEFAULT_NETWORK


def validate_address(address: str | None, network: str) -> str:
    address = (address or "").strip()
    pattern = ADDRESS_PATTERNS.get(network)
    if pattern is None:
        raise BadRequestError(f"Unsupported network: {network}", code="UNSUPPORTED_NETWORK")
    if not pattern.match(address):
        raise InvalidAddress(f"Invalid {network} address")
    return address


async def request(
    store: LedgerStore,
    account_id: str,
    address: str | None,
    policy: RewardPolicy,
    network: str | None = None,
    amount: Decimal | None = None,
    idempotency_key: str | None = None,
) -> WithdrawalResult:
    """
    Debit the account and open a pending withdrawal. Without an amount the whole
    balance is withdrawn. All checks run inside the unit that debits.
    """
    network = normalize_network(network)
    address = validate_address(address, network)
    if amount is not None:
        try:
            amount = quantize(amount)
        except AmountOutOfRange as e:
            raise InvalidAmount(str(e)) from e
        if amount < policy.min_withdraw:
            raise BelowMinimum(details={"min_withdraw": str(policy.min_withdraw), "requested": str(amount)})

    async def _request(session: LedgerSession) -> WithdrawalResult:
        account = await session.get_account(account_id)
        if account is None:
            raise NotFoundError("Account not found")
        if await session.get_pending_withdrawal(account_id):
            raise DuplicatePending()
        requested = amount if amount is not None else account.balance
        if requested < policy.min_withdraw:
            raise BelowMinimum(details={"min_withdraw": str(policy.min_withdraw), "balance": str(account.balance)})
        if requested > account.balance:
            raise InsufficientBalanceError(details={"balance": str(account.balance), "requested": str(requested)})
        _, account = await accounts_service.debit(
            session,
            account_id,
            requested,
            {"reason": "withdraw_request", "network": network, "address": address},
        )
        withdrawal = WithdrawalRequest(account_id=account_id, amount=requested, address=address, network=network)
        try:
            await session.insert_withdrawal(withdrawal)
        except DuplicateKeyError as e:
            if e.key != "pending_withdrawal":
                raise
            raise DuplicatePending() from e
        return WithdrawalResult(withdrawal=withdrawal, balance=account.balance)

    accepted, result = await idempotency.run_once(store, idempotency_key, ENDPOINT, _request)
    if not accepted:
        raise DuplicateRequest()
    withdrawal = result.withdrawal
    log.info(
        "withdrawal_requested",
        account_id=account_id,
        withdrawal_id=withdrawal.id,
        amount=str(withdrawal.amount),
        network=network,
    )
    return result


async def mark_processed(store: LedgerStore, withdrawal_id: str, settlement_ref: str) -> WithdrawalRequest:
    """Operator confirms settlement (e.g. with the payout tx hash)."""
    settlement_ref = (settlement_ref or "").strip()
    if not settlement_ref:
        raise BadRequestError("Settlement reference required")

    async def _mark(session: LedgerSession) -> WithdrawalRequest | None:
        return await session.mark_withdrawal_processed(withdrawal_id, settlement_ref, datetime.utcnow())

    withdrawal = await store.atomic(_mark)
    if withdrawal is None:
        raise NotFoundOrNotPending()
    log.info("withdrawal_processed", withdrawal_id=withdrawal_id, settlement_ref=settlement_ref)
    return withdrawal


async def list_pending(store: LedgerStore, limit: int = 20) -> list[WithdrawalRequest]:
    async def _list(session: LedgerSession) -> list[WithdrawalRequest]:
        return await session.list_withdrawals(status="pending", limit=limit)

    return await store.atomic(_list)


async def list_for_account(store: LedgerStore, account_id: str, limit: int = 20) -> list[WithdrawalRequest]:
    async def _list(session: LedgerSession) -> list[WithdrawalRequest]:
        return await session.list_withdrawals(account_id=account_id, limit=limit)

    return await store.atomic(_list)
