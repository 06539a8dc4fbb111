"""Database schema for wallets, balances, currencies and prices."""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class AssetScope(enum.Enum):
    """Where an asset is held: an exchange, a market, a chain or a protocol."""

    BINANCE = "binance"
    UPBIT = "upbit"
    SPOT = "spot"
    FUTURE = "future"
    ETHEREUM = "ethereum"
    PENDLE2 = "pendle2"
    STAKESTONE = "stakestone"
    OTHER = "other"


class DataProvider(enum.Enum):
    """Source that supplied a balance or a price."""

    CAM = "cam"
    CCXT = "ccxt"
    DEBANK = "debank"


def _enum_column(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


def _cascading_fk(target: str, name: str) -> ForeignKey:
    return ForeignKey(target, name=name, ondelete="CASCADE", onupdate="CASCADE")


_ASSET_SCOPE = _enum_column(AssetScope, "asset_scope")
_DATA_PROVIDER = _enum_column(DataProvider, "data_provider")
_AMOUNT = Numeric(20, 8, asdecimal=True)


class Base(DeclarativeBase):
    """Declarative base holding the metadata of every table."""


class Wallet(Base):
    __tablename__ = "wallet"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, _cascading_fk("wallet.id", "fk-wallet-parent_id"), nullable=True
    )
    scope: Mapped[AssetScope] = mapped_column(_ASSET_SCOPE, nullable=False)

    parent: Mapped[Optional[Wallet]] = relationship(
        "Wallet", remote_side="Wallet.id", back_populates="children"
    )
    children: Mapped[List[Wallet]] = relationship(
        "Wallet", back_populates="parent", passive_deletes=True
    )
    balances: Mapped[List[Balance]] = relationship(
        back_populates="wallet", cascade="all, delete-orphan", passive_deletes=True
    )
    balance_priorities: Mapped[List[BalancePriority]] = relationship(
        back_populates="wallet", cascade="all, delete-orphan", passive_deletes=True
    )
    wallet_metadata: Mapped[List[WalletMetadata]] = relationship(
        back_populates="wallet", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"Wallet(id={self.id!r}, parent_id={self.parent_id!r}, scope={self.scope!r})"


class WalletMetadata(Base):
    __tablename__ = "wallet_metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, _cascading_fk("wallet.id", "fk-wallet_metadata-wallet_id"), nullable=False
    )
    alias: Mapped[str] = mapped_column(String, nullable=False)
    # Centralised-exchange wallets have no on-chain address.
    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    wallet: Mapped[Wallet] = relationship(back_populates="wallet_metadata")

    def __repr__(self) -> str:
        return (
            f"WalletMetadata(id={self.id!r}, wallet_id={self.wallet_id!r}, "
            f"alias={self.alias!r}, address={self.address!r})"
        )


class Balance(Base):
    __tablename__ = "balance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, _cascading_fk("wallet.id", "fk-balance-wallet_id"), nullable=False
    )
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    provider: Mapped[DataProvider] = mapped_column(_DATA_PROVIDER, nullable=False)

    wallet: Mapped[Wallet] = relationship(back_populates="balances")
    entries: Mapped[List[BalanceEntry]] = relationship(
        back_populates="balance", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return (
            f"Balance(id={self.id!r}, wallet_id={self.wallet_id!r}, "
            f"time={self.time!r}, provider={self.provider!r})"
        )


class BalanceEntry(Base):
    __tablename__ = "balance_entry"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    balance_id: Mapped[int] = mapped_column(
        Integer, _cascading_fk("balance.id", "fk-balance_entry-balance_id"), nullable=False
    )
    raw_currency: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(_AMOUNT, nullable=False)

    balance: Mapped[Balance] = relationship(back_populates="entries")

    def __repr__(self) -> str:
        return (
            f"BalanceEntry(id={self.id!r}, balance_id={self.balance_id!r}, "
            f"raw_currency={self.raw_currency!r}, amount={self.amount!r})"
        )


class BalancePriority(Base):
    __tablename__ = "balance_priority"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, _cascading_fk("wallet.id", "fk-balance_priority-wallet_id"), nullable=False
    )
    provider: Mapped[DataProvider] = mapped_column(_DATA_PROVIDER, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)

    wallet: Mapped[Wallet] = relationship(back_populates="balance_priorities")

    def __repr__(self) -> str:
        return (
            f"BalancePriority(id={self.id!r}, wallet_id={self.wallet_id!r}, "
            f"provider={self.provider!r}, priority={self.priority!r})"
        )


class Currency(Base):
    __tablename__ = "currency"

    name: Mapped[str] = mapped_column(String, primary_key=True, autoincrement=False)

    currency_maps: Mapped[List[CurrencyMap]] = relationship(
        back_populates="currency_ref", cascade="all, delete-orphan", passive_deletes=True
    )
    price_providers: Mapped[List[PriceProvider]] = relationship(
        back_populates="currency_ref", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"Currency(name={self.name!r})"


class CurrencyMap(Base):
    __tablename__ = "currency_map"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[AssetScope] = mapped_column(_ASSET_SCOPE, nullable=False)
    raw_currency: Mapped[str] = mapped_column(String, nullable=False)
    currency: Mapped[str] = mapped_column(
        String, _cascading_fk("currency.name", "fk-currency_map-currency"), nullable=False
    )

    currency_ref: Mapped[Currency] = relationship(back_populates="currency_maps")

    def __repr__(self) -> str:
        return (
            f"CurrencyMap(id={self.id!r}, scope={self.scope!r}, "
            f"raw_currency={self.raw_currency!r}, currency={self.currency!r})"
        )


class Price(Base):
    __tablename__ = "price"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    currency: Mapped[str] = mapped_column(String, nullable=False)
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    value: Mapped[Decimal] = mapped_column(_AMOUNT, nullable=False)
    liquidity: Mapped[Decimal] = mapped_column(_AMOUNT, nullable=False)
    provider: Mapped[DataProvider] = mapped_column(_DATA_PROVIDER, nullable=False)

    def __repr__(self) -> str:
        return (
            f"Price(id={self.id!r}, currency={self.currency!r}, time={self.time!r}, "
            f"value={self.value!r}, liquidity={self.liquidity!r}, provider={self.provider!r})"
        )


class PriceProvider(Base):
    __tablename__ = "price_provider"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    currency: Mapped[str] = mapped_column(
        String, _cascading_fk("currency.name", "fk-price_provider-currency"), nullable=False
    )
    provider: Mapped[DataProvider] = mapped_column(_DATA_PROVIDER, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)

    currency_ref: Mapped[Currency] = relationship(back_populates="price_providers")

    def __repr__(self) -> str:
        return (
            f"PriceProvider(id={self.id!r}, currency={self.currency!r}, "
            f"provider={self.provider!r}, priority={self.priority!r})"
        )