"""
Account endpoints
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from .auth import get_current_user_id, get_ledger_system
from .schemas import AccountResponse, CreateAccountRequest, TransactionListResponse, TransactionResponse
from ..system import LedgerSystem


router = APIRouter()


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Open a new account"""
    account = system.accounts.create_account(user_id, request.currency)
    return AccountResponse.from_account(account, system.accounts.currency_symbol(account))


@router.get("", response_model=List[AccountResponse])
def list_accounts(
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List the caller's accounts"""
    return [
        AccountResponse.from_account(account, system.accounts.currency_symbol(account))
        for account in system.accounts.list_accounts(user_id)
    ]


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get account details"""
    account = system.accounts.get_account(user_id, account_id)
    return AccountResponse.from_account(account, system.accounts.currency_symbol(account))


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Close an account"""
    system.accounts.delete_account(user_id, account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{account_id}/transactions", response_model=TransactionListResponse)
def list_account_transactions(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List the transactions of one account"""
    records = system.history.list_account_transactions(user_id, account_id)
    return TransactionListResponse(transactions=[TransactionResponse.from_record(r) for r in records])
