"""
Transaction endpoints
"""

from fastapi import APIRouter, Depends, Response, status

from .auth import get_current_user_id, get_ledger_system
from .schemas import (
    DepositRequest, WithdrawRequest, TransferRequest,
    TransactionListResponse, TransactionResponse
)
from ..models import LedgerEntry
from ..system import LedgerSystem


router = APIRouter()


def _entry_response(system: LedgerSystem, entry: LedgerEntry) -> TransactionResponse:
    return TransactionResponse.from_entry(entry, system.storage.resolve_currency_symbol(entry.currency_id))


@router.post("/accounts/deposit", response_model=TransactionResponse)
def deposit(
    request: DepositRequest,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Make a deposit"""
    entry = system.engine.deposit(user_id, request.account_id, request.amount)
    return _entry_response(system, entry)


@router.post("/accounts/withdraw", response_model=TransactionResponse)
def withdraw(
    request: WithdrawRequest,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Make a withdrawal"""
    entry = system.engine.withdraw(user_id, request.account_id, request.amount)
    return _entry_response(system, entry)


@router.post("/transfers", response_model=TransactionResponse)
def transfer(
    request: TransferRequest,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Make a transfer between accounts"""
    entry = system.engine.transfer(user_id, request.from_account_id, request.to_account_id, request.amount)
    return _entry_response(system, entry)


@router.get(
    "/transactions",
    response_model=TransactionListResponse,
    responses={status.HTTP_204_NO_CONTENT: {"description": "No transactions"}}
)
def list_transactions(
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List transactions across all of the caller's accounts"""
    records = system.history.list_transactions(user_id)
    if not records:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return TransactionListResponse(transactions=[TransactionResponse.from_record(r) for r in records])
