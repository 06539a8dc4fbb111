"""Database queries for wallets, balances, currencies and prices."""

from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional, Tuple, Type, Union

from sqlalchemy import Engine, create_engine, delete, select
from sqlalchemy.orm import Session

from hammer.models import (
    AssetScope,
    Balance,
    BalanceEntry,
    BalancePriority,
    Base,
    Currency,
    CurrencyMap,
    Price,
    PriceProvider,
    Wallet,
    WalletMetadata,
)
from hammer.types import (
    NewBalance,
    NewBalanceEntry,
    NewBalancePriority,
    NewCurrency,
    NewCurrencyMap,
    NewPrice,
    NewPricePriority,
    NewWallet,
    NewWalletMetadata,
)

__all__ = ["HammerService", "QueryService"]


def _as_scope(scope: Union[AssetScope, str]) -> AssetScope:
    if isinstance(scope, AssetScope):
        return scope
    try:
        return AssetScope(scope)
    except ValueError:
        raise ValueError(f"unknown asset scope {scope!r}") from None


class QueryService:
    """Reads and writes the asset tables through one database engine."""

    def __init__(self, db: Engine):
        self.engine = db

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    def _all(self, statement) -> list:
        with self._session() as session:
            return list(session.scalars(statement))

    def _first(self, statement):
        with self._session() as session:
            return session.scalars(statement.limit(1)).first()

    def _get(self, model: Type[Base], key: Any):
        with self._session() as session:
            return session.get(model, key)

    def _insert(self, row: Base):
        with self._session() as session, session.begin():
            session.add(row)
        return row

    def _update(self, model: Type[Base], id: int, **values: Any):
        with self._session() as session, session.begin():
            row = session.get(model, id)
            if row is None:
                raise LookupError(f"no {model.__tablename__} row with id {id} to update")
            for name, value in values.items():
                setattr(row, name, value)
        return row

    def _delete(self, statement) -> bool:
        with self._session() as session, session.begin():
            return session.execute(statement).rowcount == 1

    # Balances

    def get_balance_by_id(self, id: int) -> Optional[Balance]:
        """The balance with this id, or None."""
        return self._get(Balance, id)

    def get_balances_by_wallet_id(self, wallet_id: int) -> List[Balance]:
        """All balances recorded for a wallet."""
        return self._all(select(Balance).where(Balance.wallet_id == wallet_id))

    def get_balance_with_entries(
        self, balance_id: int
    ) -> Optional[Tuple[Balance, List[BalanceEntry]]]:
        """A balance together with its entries, or None if it does not exist."""
        with self._session() as session:
            balance = session.get(Balance, balance_id)
            if balance is None:
                return None
            entries = list(
                session.scalars(
                    select(BalanceEntry)
                    .where(BalanceEntry.balance_id == balance_id)
                    .order_by(BalanceEntry.id)
                )
            )
        return balance, entries

    def create_balance_with_entries(
        self, new_balance: NewBalance, entries: List[NewBalanceEntry]
    ) -> Balance:
        """Insert a balance and its entries in one transaction."""
        with self._session() as session, session.begin():
            balance = Balance(
                wallet_id=new_balance.wallet_id,
                time=new_balance.time,
                provider=new_balance.provider,
            )
            session.add(balance)
            session.flush()
            if entries:
                session.add_all(
                    BalanceEntry(
                        balance_id=balance.id,
                        raw_currency=entry.raw_currency,
                        amount=entry.amount,
                    )
                    for entry in entries
                )
        return balance

    def update_balance(self, id: int, new_balance: NewBalance) -> Balance:
        """Overwrite a balance; raise LookupError if it does not exist."""
        return self._update(
            Balance,
            id,
            wallet_id=new_balance.wallet_id,
            time=new_balance.time,
            provider=new_balance.provider,
        )

    def delete_balance(self, id: int) -> bool:
        """Delete a balance; True if exactly one row went."""
        return self._delete(delete(Balance).where(Balance.id == id))

    def get_balance_entries(self, balance_id: int) -> List[BalanceEntry]:
        """All entries of a balance."""
        return self._all(select(BalanceEntry).where(BalanceEntry.balance_id == balance_id))

    def add_balance_entry(self, new_entry: NewBalanceEntry) -> BalanceEntry:
        """Insert one balance entry."""
        return self._insert(
            BalanceEntry(
                balance_id=new_entry.balance_id,
                raw_currency=new_entry.raw_currency,
                amount=new_entry.amount,
            )
        )

    def update_balance_entry(self, id: int, new_entry: NewBalanceEntry) -> BalanceEntry:
        """Overwrite a balance entry; raise LookupError if it does not exist."""
        return self._update(
            BalanceEntry,
            id,
            balance_id=new_entry.balance_id,
            raw_currency=new_entry.raw_currency,
            amount=new_entry.amount,
        )

    def delete_balance_entry(self, id: int) -> bool:
        """Delete a balance entry; True if exactly one row went."""
        return self._delete(delete(BalanceEntry).where(BalanceEntry.id == id))

    def get_balance_priorities(self, wallet_id: int) -> List[BalancePriority]:
        """Provider priorities of a wallet, lowest priority number first."""
        return self._all(
            select(BalancePriority)
            .where(BalancePriority.wallet_id == wallet_id)
            .order_by(BalancePriority.priority.asc())
        )

    def set_balance_priority(self, new_priority: NewBalancePriority) -> BalancePriority:
        """Insert a provider priority for a wallet."""
        return self._insert(
            BalancePriority(
                wallet_id=new_priority.wallet_id,
                provider=new_priority.provider,
                priority=new_priority.priority,
            )
        )

    def update_balance_priority(
        self, id: int, new_priority: NewBalancePriority
    ) -> BalancePriority:
        """Overwrite a balance priority; raise LookupError if it does not exist."""
        return self._update(
            BalancePriority,
            id,
            wallet_id=new_priority.wallet_id,
            provider=new_priority.provider,
            priority=new_priority.priority,
        )

    def delete_balance_priority(self, id: int) -> bool:
        """Delete a balance priority; True if exactly one row went."""
        return self._delete(delete(BalancePriority).where(BalancePriority.id == id))

    # Currencies

    def get_currencies(self) -> List[Currency]:
        """All currencies."""
        return self._all(select(Currency))

    def get_currency_by_name(self, name: str) -> Optional[Currency]:
        """The currency with this name, or None."""
        return self._first(select(Currency).where(Currency.name == name))

    def create_currency(self, new_currency: NewCurrency) -> Currency:
        """Insert a currency."""
        return self._insert(Currency(name=new_currency.name))

    def delete_currency(self, name: str) -> bool:
        """Delete a currency by name; True if exactly one row went."""
        return self._delete(delete(Currency).where(Currency.name == name))

    def get_currency_mappings_by_scope(
        self, scope: Union[AssetScope, str]
    ) -> List[CurrencyMap]:
        """All currency mappings of one scope."""
        return self._all(select(CurrencyMap).where(CurrencyMap.scope == _as_scope(scope)))

    def get_currency_mapping(
        self, scope: Union[AssetScope, str], raw_currency: str
    ) -> Optional[CurrencyMap]:
        """The mapping of a raw currency within a scope, or None."""
        return self._first(
            select(CurrencyMap)
            .where(CurrencyMap.scope == _as_scope(scope))
            .where(CurrencyMap.raw_currency == raw_currency)
        )

    def create_currency_mapping(self, new_mapping: NewCurrencyMap) -> CurrencyMap:
        """Insert a currency mapping."""
        return self._insert(
            CurrencyMap(
                scope=new_mapping.scope,
                raw_currency=new_mapping.raw_currency,
                currency=new_mapping.currency,
            )
        )

    def update_currency_mapping(self, id: int, new_mapping: NewCurrencyMap) -> CurrencyMap:
        """Overwrite a currency mapping; raise LookupError if it does not exist."""
        return self._update(
            CurrencyMap,
            id,
            scope=new_mapping.scope,
            raw_currency=new_mapping.raw_currency,
            currency=new_mapping.currency,
        )

    def delete_currency_mapping(self, id: int) -> bool:
        """Delete a currency mapping; True if exactly one row went."""
        return self._delete(delete(CurrencyMap).where(CurrencyMap.id == id))

    def get_all_currency_mappings(self) -> List[CurrencyMap]:
        """Every currency mapping."""
        return self._all(select(CurrencyMap))

    # Prices

    def get_price_by_id(self, id: int) -> Optional[Price]:
        """The price with this id, or None."""
        return self._get(Price, id)

    def get_prices_by_currency(self, currency: str) -> List[Price]:
        """All prices of a currency, newest first."""
        return self._all(
            select(Price).where(Price.currency == currency).order_by(Price.time.desc())
        )

    def get_latest_price(self, currency: str) -> Optional[Price]:
        """The newest price of a currency, or None."""
        return self._first(
            select(Price).where(Price.currency == currency).order_by(Price.time.desc())
        )

    def get_prices_by_currency_and_time_range(
        self, currency: str, start_time: datetime, end_time: datetime
    ) -> List[Price]:
        """Prices of a currency between two times inclusive, oldest first."""
        return self._all(
            select(Price)
            .where(Price.currency == currency)
            .where(Price.time >= start_time)
            .where(Price.time <= end_time)
            .order_by(Price.time.asc())
        )

    def create_price(self, new_price: NewPrice) -> Price:
        """Insert a price."""
        return self._insert(
            Price(
                currency=new_price.currency,
                time=new_price.time,
                value=new_price.value,
                liquidity=new_price.liquidity,
                provider=new_price.provider,
            )
        )

    def update_price(self, id: int, new_price: NewPrice) -> Price:
        """Overwrite a price; raise LookupError if it does not exist."""
        return self._update(
            Price,
            id,
            currency=new_price.currency,
            time=new_price.time,
            value=new_price.value,
            liquidity=new_price.liquidity,
            provider=new_price.provider,
        )

    def delete_price(self, id: int) -> bool:
        """Delete a price; True if exactly one row went."""
        return self._delete(delete(Price).where(Price.id == id))

    def get_price_providers(self, currency: str) -> List[PriceProvider]:
        """Price providers of a currency, lowest priority number first."""
        return self._all(
            select(PriceProvider)
            .where(PriceProvider.currency == currency)
            .order_by(PriceProvider.priority.asc())
        )

    def set_price_provider(self, new_priority: NewPricePriority) -> PriceProvider:
        """Insert a price provider for a currency."""
        return self._insert(
            PriceProvider(
                currency=new_priority.currency,
                provider=new_priority.provider,
                priority=new_priority.priority,
            )
        )

    def update_price_provider(self, id: int, new_priority: NewPricePriority) -> PriceProvider:
        """Overwrite a price provider; raise LookupError if it does not exist."""
        return self._update(
            PriceProvider,
            id,
            currency=new_priority.currency,
            provider=new_priority.provider,
            priority=new_priority.priority,
        )

    def delete_price_provider(self, id: int) -> bool:
        """Delete a price provider; True if exactly one row went."""
        return self._delete(delete(PriceProvider).where(PriceProvider.id == id))

    def get_all_price_providers(self) -> List[PriceProvider]:
        """Every price provider, by currency and then priority."""
        return self._all(
            select(PriceProvider).order_by(
                PriceProvider.currency.asc(), PriceProvider.priority.asc()
            )
        )

    # Wallets

    def get_wallets_with_metadata(self) -> List[Tuple[Wallet, List[WalletMetadata]]]:
        """Every wallet paired with its metadata rows."""
        with self._session() as session:
            wallets = list(session.scalars(select(Wallet).order_by(Wallet.id)))
            metadata = list(session.scalars(select(WalletMetadata).order_by(WalletMetadata.id)))
        grouped: dict[int, List[WalletMetadata]] = {wallet.id: [] for wallet in wallets}
        for row in metadata:
            grouped.setdefault(row.wallet_id, []).append(row)
        return [(wallet, grouped[wallet.id]) for wallet in wallets]

    def get_wallet_by_id(self, id: int) -> Optional[Wallet]:
        """The wallet with this id, or None."""
        return self._get(Wallet, id)

    def create_wallet(self, new_wallet: NewWallet) -> Wallet:
        """Insert a wallet."""
        return self._insert(Wallet(scope=new_wallet.scope, parent_id=new_wallet.parent_id))

    def update_wallet(self, id: int, new_wallet: NewWallet) -> Wallet:
        """Overwrite a wallet; raise LookupError if it does not exist."""
        return self._update(
            Wallet, id, scope=new_wallet.scope, parent_id=new_wallet.parent_id
        )

    def delete_wallet(self, id: int) -> bool:
        """Delete a wallet; True if exactly one row went."""
        return self._delete(delete(Wallet).where(Wallet.id == id))

    def get_wallet_metadata(self, wallet_id: int) -> Optional[WalletMetadata]:
        """The metadata of a wallet, or None."""
        return self._first(
            select(WalletMetadata).where(WalletMetadata.wallet_id == wallet_id)
        )

    def create_wallet_metadata(self, new_metadata: NewWalletMetadata) -> WalletMetadata:
        """Insert wallet metadata."""
        return self._insert(
            WalletMetadata(
                wallet_id=new_metadata.wallet_id,
                alias=new_metadata.alias,
                address=new_metadata.address,
            )
        )

    def update_wallet_metadata(
        self, id: int, new_metadata: NewWalletMetadata
    ) -> WalletMetadata:
        """Overwrite wallet metadata; raise LookupError if it does not exist."""
        return self._update(
            WalletMetadata,
            id,
            wallet_id=new_metadata.wallet_id,
            alias=new_metadata.alias,
            address=new_metadata.address,
        )

    def delete_wallet_metadata(self, id: int) -> bool:
        """Delete wallet metadata; True if exactly one row went."""
        return self._delete(delete(WalletMetadata).where(WalletMetadata.id == id))


class HammerService:
    """Entry point bundling the services built on one database."""

    def __init__(self, db: Engine):
        self.query = QueryService(db)

    @classmethod
    def from_url(cls, url: str) -> HammerService:
        """Connect to the database at ``url``."""
        engine = create_engine(url)
        with engine.connect():
            pass
        return cls(engine)

    @classmethod
    def from_env(cls) -> HammerService:
        """Connect to the database named by the DATABASE_URL environment variable."""
        url = os.environ.get("DATABASE_URL")
        if url is None:
            raise RuntimeError("DATABASE_URL environment variable must be set")
        return cls.from_url(url)