from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_dashboard.domain.models.portfolio import Holding, Portfolio, PricePoint
from portfolio_dashboard.utils.time import safe_parse_timestamp, to_day


class PortfolioSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    strategy_description: str = Field("", alias="strategyDescription")
    user_id: Optional[str] = Field(None, alias="userId")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_updated: Optional[datetime] = Field(None, alias="lastUpdated")

    @field_validator("created_at", "last_updated", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[datetime]:
        return safe_parse_timestamp(value)

    def to_domain(self) -> Portfolio:
        return Portfolio(
            id=self.id,
            name=self.name,
            strategy_description=self.strategy_description,
            user_id=self.user_id,
            created_at=self.created_at,
            last_updated=self.last_updated,
        )


class HoldingSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    portfolio_id: Optional[str] = Field(None, alias="portfolioId")
    symbol: str
    quantity: float = 0.0
    current_total_value: float = Field(0.0, alias="currentTotalValue")
    total_base_value: float = Field(0.0, alias="totalBaseValue")
    percentage_change: Optional[float] = Field(None, alias="percentageChange")
    last_updated: Optional[datetime] = Field(None, alias="lastUpdated")

    @field_validator("last_updated", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[datetime]:
        return safe_parse_timestamp(value)

    def to_domain(self) -> Holding:
        return Holding(
            id=self.id,
            portfolio_id=self.portfolio_id,
            symbol=self.symbol,
            quantity=self.quantity,
            current_total_value=self.current_total_value,
            total_base_value=self.total_base_value,
            percentage_change_since_cost=self.percentage_change,
            last_updated=self.last_updated,
        )


class MarketDataSchema(BaseModel):
    """Daily bar from the market data endpoints; only `close` is used."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    symbol: str = ""
    day: date = Field(alias="date")
    close: Optional[float] = None

    @field_validator("day", mode="before")
    @classmethod
    def _day(cls, value: Any) -> date:
        return to_day(value)

    def to_domain(self) -> PricePoint:
        return PricePoint(symbol=self.symbol, date=self.day, close=self.close)
