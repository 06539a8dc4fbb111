"""Plain records passed into the query service and received from the CAM API."""

import types as _pytypes
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union, get_args, get_origin

from hammer.models import AssetScope, DataProvider

__all__ = [
    "AssetScope",
    "DataProvider",
    "NewWallet",
    "NewWalletMetadata",
    "NewBalance",
    "NewBalanceEntry",
    "NewPrice",
    "NewCurrency",
    "NewCurrencyMap",
    "NewBalancePriority",
    "NewPricePriority",
    "PongResponse",
    "V3Error",
]


def _optional_inner(hint: Any) -> Optional[Any]:
    """Return the wrapped type if ``hint`` is ``X | None``, else None."""
    if get_origin(hint) in (Union, _pytypes.UnionType):
        args = [arg for arg in get_args(hint) if arg is not type(None)]
        if len(args) != len(get_args(hint)) and len(args) == 1:
            return args[0]
    return None


def _dump(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.name.capitalize() if value.name.isupper() else value.name
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _enum_member(enum_cls: type, value: Any, name: str) -> Enum:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if member.name.capitalize() == value or member.name == value:
                return member
    raise ValueError(f"field {name!r}: unknown {enum_cls.__name__} variant {value!r}")


def _convert(hint: Any, value: Any, name: str) -> Any:
    inner = _optional_inner(hint)
    if value is None:
        if inner is not None:
            return None
        raise ValueError(f"field {name!r} must not be null")
    if inner is not None:
        hint = inner
    if isinstance(hint, type) and issubclass(hint, Enum):
        return _enum_member(hint, value, name)
    if hint is datetime:
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
            try:
                return datetime.fromisoformat(text)
            except ValueError:
                pass
        raise ValueError(f"field {name!r}: invalid timestamp {value!r}")
    if hint is Decimal:
        if isinstance(value, (Decimal, int, float, str)) and not isinstance(value, bool):
            try:
                return Decimal(str(value))
            except InvalidOperation:
                pass
        raise ValueError(f"field {name!r}: invalid decimal {value!r}")
    if hint is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise ValueError(f"field {name!r}: expected an integer, got {value!r}")
    if hint is str:
        if isinstance(value, str):
            return value
        raise ValueError(f"field {name!r}: expected a string, got {value!r}")
    return value


class _Record:
    """Dictionary conversion shared by the record dataclasses."""

    def to_dict(self) -> dict:
        """Return a JSON-ready mapping of the record's fields."""
        return {f.name: _dump(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping):
        """Build a record from a mapping; unknown keys are ignored."""
        if not isinstance(data, Mapping):
            raise ValueError(f"expected a mapping for {cls.__name__}, got {type(data).__name__}")
        kwargs = {}
        for f in fields(cls):
            hint = f.type
            if f.name in data:
                kwargs[f.name] = _convert(hint, data[f.name], f.name)
            elif _optional_inner(hint) is not None:
                kwargs[f.name] = None
            else:
                raise ValueError(f"missing field {f.name!r} for {cls.__name__}")
        return cls(**kwargs)


@dataclass
class NewWallet(_Record):
    scope: AssetScope
    parent_id: Optional[int] = None


@dataclass
class NewWalletMetadata(_Record):
    wallet_id: int
    alias: str
    address: Optional[str] = None


@dataclass
class NewBalance(_Record):
    wallet_id: int
    time: datetime
    provider: DataProvider


@dataclass
class NewBalanceEntry(_Record):
    balance_id: int
    raw_currency: str
    amount: Decimal


@dataclass
class NewPrice(_Record):
    currency: str
    time: datetime
    value: Decimal
    liquidity: Decimal
    provider: DataProvider


@dataclass
class NewCurrency(_Record):
    name: str


@dataclass
class NewCurrencyMap(_Record):
    scope: AssetScope
    raw_currency: str
    currency: str


@dataclass
class NewBalancePriority(_Record):
    wallet_id: int
    provider: DataProvider
    priority: int


@dataclass
class NewPricePriority(_Record):
    currency: str
    provider: DataProvider
    priority: int


@dataclass
class PongResponse(_Record):
    """Reply to a ping of the CAM API."""

    pong: str


@dataclass
class V3Error(_Record):
    """Error body returned by the CAM v3 API."""

    code: str
    message: str