"""Entity shapes shared by both persistence gateways and the dashboards.

Records are plain dataclasses.  ``to_dict`` gives a JSON-safe mapping (enums
as their values, timestamps as ISO-8601 strings) and ``from_dict`` accepts
either that form or the native objects handed back by SQLAlchemy.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    RETAILER = "RETAILER"
    CUSTOMER = "CUSTOMER"


class ShopType(str, enum.Enum):
    GROCERIES = "Groceries"
    FRUITS = "Fruits"
    PHARMACY = "Pharmacy"


class OrderStatus(str, enum.Enum):
    ORDERED = "Ordered"
    ACCEPTED = "Accepted"
    DELIVERED = "Delivered"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | str | None) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _known(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


def _jsonable(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    return value


class Record:
    """Serialisation shared by every entity."""

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        return cls(**_known(cls, data))


@dataclass
class User(Record):
    id: str
    email: str
    name: str
    role: UserRole
    contact: str = ""
    address: str = ""
    landmarks: Optional[str] = None
    is_verified: bool = False
    is_email_verified: bool = False
    password_hash: Optional[str] = None

    def __post_init__(self) -> None:
        self.role = UserRole(self.role)
        self.is_verified = bool(self.is_verified)
        self.is_email_verified = bool(self.is_email_verified)

    def public_dict(self) -> Dict[str, Any]:
        """The record minus credentials, as kept in the browser session."""
        data = self.to_dict()
        data.pop("password_hash", None)
        return data


@dataclass
class Shop(Record):
    id: str
    owner_id: str
    name: str
    type: ShopType
    area: str = ""
    address: str = ""
    is_open: bool = False
    rating: float = 4.5
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __post_init__(self) -> None:
        self.type = ShopType(self.type)
        self.is_open = bool(self.is_open)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def label(self) -> str:
        return self.name.split("'")[0]


@dataclass
class Product(Record):
    id: str
    shop_id: str
    name: str
    price: float
    quantity: str = ""
    image: str = ""
    in_stock: bool = True

    def __post_init__(self) -> None:
        self.price = float(self.price)
        self.in_stock = bool(self.in_stock)


@dataclass
class OrderItem(Record):
    product_id: str
    name: str
    price: float
    quantity: int = 1

    def __post_init__(self) -> None:
        self.price = float(self.price)
        self.quantity = int(self.quantity)

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


@dataclass
class Order(Record):
    id: str
    customer_id: str
    customer_name: str
    customer_address: str
    customer_contact: str
    shop_id: str
    shop_name: str
    items: List[OrderItem]
    status: OrderStatus
    total: float
    platform_charge: float
    delivery_charge: float
    grand_total: float
    delivery_slot: str
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.items = [
            item if isinstance(item, OrderItem) else OrderItem.from_dict(item)
            for item in self.items or []
        ]
        self.status = OrderStatus(self.status)
        self.created_at = as_utc(self.created_at) or utcnow()


@dataclass
class EarningStat(Record):
    date: str
    amount: float
