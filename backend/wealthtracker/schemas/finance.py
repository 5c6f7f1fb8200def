"""
Financial record schemas.

These records are owned by the client application; the services here only
read and serialize them, so every model tolerates extra fields and keeps
them on round-trip.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model using the client's camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_storage(self) -> dict:
        """JSON-safe dict in the client's wire shape (camelCase, ISO dates)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def field_name(cls, key: str) -> str:
        """Map a camelCase alias or a field name onto the field name."""
        for name, info in cls.model_fields.items():
            if key == name or key == info.alias:
                return name
        return key

    def merged(self, updates: Dict[str, Any], protected: Tuple[str, ...] = ("id",)):
        """
        Partial update: a new validated copy with ``updates`` applied.

        Keys may be field names or camelCase aliases. Protected fields are
        left unchanged.
        """
        data = self.model_dump()
        for key, value in updates.items():
            name = self.field_name(key)
            if name in protected:
                continue
            data[name] = value
        return type(self).model_validate(data)


class FinancialRecord(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class Transaction(FinancialRecord):
    id: str
    date: datetime
    amount: float
    description: str = ""
    type: str = "expense"  # income | expense | transfer
    category: Optional[str] = None
    account_id: Optional[str] = None
    account_name: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class Account(FinancialRecord):
    id: str
    name: str
    type: str = "checking"
    balance: float = 0.0
    currency: str = "USD"
    last_updated: Optional[datetime] = None


class Investment(FinancialRecord):
    id: str
    symbol: str
    name: str = ""
    quantity: float = 0.0
    purchase_price: float = 0.0
    current_value: Optional[float] = None
    cost_basis: Optional[float] = None
    purchase_date: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    account_id: Optional[str] = None

    @property
    def resolved_cost_basis(self) -> float:
        if self.cost_basis:
            return self.cost_basis
        return self.quantity * self.purchase_price

    @property
    def resolved_current_value(self) -> float:
        if self.current_value is not None:
            return self.current_value
        return self.quantity * self.purchase_price


class Budget(FinancialRecord):
    id: str
    category_id: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[float] = None
    budgeted: Optional[float] = None
    spent: float = 0.0
    period: str = "monthly"
    updated_at: Optional[datetime] = None

    @property
    def category_key(self) -> str:
        return self.category_id or self.category or "Uncategorized"

    @property
    def limit(self) -> float:
        """Budgeted amount; older clients only send ``amount``."""
        if self.budgeted is not None:
            return self.budgeted
        return self.amount or 0.0


class Goal(FinancialRecord):
    id: str
    name: str
    target_amount: float = 0.0
    current_amount: float = 0.0
    target_date: Optional[datetime] = None

    @property
    def progress(self) -> float:
        if self.target_amount <= 0:
            return 0.0
        return self.current_amount / self.target_amount * 100

    @property
    def remaining(self) -> float:
        return max(self.target_amount - self.current_amount, 0.0)


class Category(FinancialRecord):
    id: str
    name: str
    type: Optional[str] = None


class FinancialData(CamelModel):
    """
    Bundle of records handed to the export formats.

    A slice left as None is "absent" (QIF/OFX refuse to run without
    transactions and accounts); an empty list is present but empty.
    """

    transactions: Optional[List[Transaction]] = None
    accounts: Optional[List[Account]] = None
    investments: Optional[List[Investment]] = None
    budgets: Optional[List[Budget]] = None
    goals: Optional[List[Goal]] = None
    categories: Optional[List[Category]] = None
