"""
Pydantic schemas for API requests and responses
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from ..history import TransactionRecord
from ..models import Account, LedgerEntry, User


# User schemas
class SignUpRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime
    
    @classmethod
    def from_user(cls, user: User) -> 'UserResponse':
        return cls(id=user.id, name=user.name, email=user.email, created_at=user.created_at)


# Account schemas
class CreateAccountRequest(BaseModel):
    currency: str = Field(..., description="Currency symbol (USD, EUR, etc.)")


class AccountResponse(BaseModel):
    id: int
    currency: str
    balance: int = Field(..., description="Balance in the smallest currency unit")
    
    @classmethod
    def from_account(cls, account: Account, currency_symbol: str) -> 'AccountResponse':
        return cls(id=account.id, currency=currency_symbol, balance=account.balance)


# Transaction schemas
class DepositRequest(BaseModel):
    account_id: int
    amount: int = Field(..., description="Amount in the smallest currency unit")


class WithdrawRequest(BaseModel):
    account_id: int
    amount: int = Field(..., description="Amount in the smallest currency unit")


class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: int = Field(..., description="Amount in the smallest currency unit")


class TransactionResponse(BaseModel):
    kind: str
    from_account_id: Optional[int] = None
    to_account_id: Optional[int] = None
    currency: str
    amount: int
    created_at: datetime
    
    @classmethod
    def from_entry(cls, entry: LedgerEntry, currency_symbol: str) -> 'TransactionResponse':
        return cls(
            kind=entry.kind.value,
            from_account_id=entry.from_account_id,
            to_account_id=entry.to_account_id,
            currency=currency_symbol,
            amount=entry.amount,
            created_at=entry.created_at
        )
    
    @classmethod
    def from_record(cls, record: TransactionRecord) -> 'TransactionResponse':
        return cls(
            kind=record.kind.value,
            from_account_id=record.from_account_id,
            to_account_id=record.to_account_id,
            currency=record.currency_symbol,
            amount=record.amount,
            created_at=record.created_at
        )


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]
