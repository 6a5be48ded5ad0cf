"""
DOMAIN MODELS — TRANSACTIONS
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class TransactionType(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class TransactionStatus(str, Enum):
    FAILED = "Failed"
    CANCELED = "Canceled"
    ON_HOLD = "OnHold"
    SUCCEEDED = "Succeeded"


class TransactionTrigger(str, Enum):
    USER = "User"
    SYSTEM = "System"
    OPTIMIZATION = "Optimization"


@dataclass(frozen=True)
class Transaction:
    id: str
    portfolio_id: str
    symbol: str
    quantity: float
    price_per_share: float
    transaction_value: float
    type: TransactionType
    status: TransactionStatus
    triggered_by: TransactionTrigger
    transaction_date: Optional[datetime] = None
    optimization_id: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class OptimizationTransactionGroup:
    """Transactions created upstream while applying one optimization."""
    optimization_id: str
    transactions: Tuple[Transaction, ...]

    @property
    def size(self) -> int:
        return len(self.transactions)
