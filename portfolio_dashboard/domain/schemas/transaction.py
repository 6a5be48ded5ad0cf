from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_dashboard.domain.models.transaction import (
    Transaction,
    TransactionStatus,
    TransactionTrigger,
    TransactionType,
)
from portfolio_dashboard.utils.time import safe_parse_timestamp


class TransactionSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    user_id: Optional[str] = Field(None, alias="userId")
    portfolio_id: str = Field(alias="portfolioId")
    symbol: str
    quantity: float = 0.0
    price_per_share: float = Field(0.0, alias="pricePerShare")
    transaction_value: float = Field(0.0, alias="transactionValue")
    transaction_date: Optional[datetime] = Field(None, alias="transactionDate")
    type: TransactionType
    status: TransactionStatus
    triggered_by: TransactionTrigger = Field(TransactionTrigger.USER, alias="triggeredBy")
    optimization_id: Optional[str] = Field(None, alias="optimizationId")

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[datetime]:
        return safe_parse_timestamp(value)

    @field_validator("optimization_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.id,
            user_id=self.user_id,
            portfolio_id=self.portfolio_id,
            symbol=self.symbol,
            quantity=self.quantity,
            price_per_share=self.price_per_share,
            transaction_value=self.transaction_value,
            transaction_date=self.transaction_date,
            type=self.type,
            status=self.status,
            triggered_by=self.triggered_by,
            optimization_id=self.optimization_id,
        )
