from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event, func, select, text
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import StatementError
from sqlalchemy.orm import Session

from hammer.models import (
    AssetScope,
    Balance,
    BalanceEntry,
    BalancePriority,
    Base,
    Currency,
    CurrencyMap,
    DataProvider,
    Price,
    PriceProvider,
    Wallet,
    WalletMetadata,
)


@pytest.fixture
def session():
    engine = create_engine("sqlite://")

    @event.listens_for(engine, "connect")
    def _enable_fks(dbapi_connection, _record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    with Session(engine) as db:
        yield db
    engine.dispose()


def test_enum_stored_as_lowercase_value(session):
    session.add(Wallet(scope=AssetScope.BINANCE))
    session.commit()
    raw = session.execute(text("SELECT scope FROM wallet")).scalar_one()
    assert raw == "binance"


def test_provider_stored_as_value(session):
    wallet = Wallet(scope=AssetScope.OTHER)
    wallet.balance_priorities.append(BalancePriority(provider=DataProvider.DEBANK, priority=2))
    session.add(wallet)
    session.commit()
    raw = session.execute(text("SELECT provider FROM balance_priority")).scalar_one()
    assert raw == DataProvider.DEBANK.value


def test_wallet_parent_and_children(session):
    parent = Wallet(scope=AssetScope.UPBIT)
    child = Wallet(scope=AssetScope.SPOT, parent=parent)
    session.add_all([parent, child])
    session.commit()
    session.expire_all()
    loaded = session.get(Wallet, child.id)
    assert loaded.parent_id == parent.id
    assert loaded.parent.scope is AssetScope.UPBIT
    assert [w.id for w in session.get(Wallet, parent.id).children] == [child.id]


def test_wallet_metadata_nullable_address(session):
    wallet = Wallet(scope=AssetScope.BINANCE)
    wallet.wallet_metadata.append(WalletMetadata(alias="main"))
    session.add(wallet)
    session.commit()
    meta = session.scalars(select(WalletMetadata)).one()
    assert meta.address is None
    assert meta.alias == "main"
    assert meta.wallet_id == wallet.id


def test_balance_entries_round_trip(session):
    wallet = Wallet(scope=AssetScope.ETHEREUM)
    balance = Balance(
        wallet=wallet,
        time=datetime(2024, 12, 1, tzinfo=timezone.utc),
        provider=DataProvider.CAM,
    )
    balance.entries.append(BalanceEntry(raw_currency="ETH", amount=Decimal("1.12345678")))
    balance.entries.append(BalanceEntry(raw_currency="USDT", amount=Decimal("250")))
    session.add(balance)
    session.commit()
    session.expire_all()
    loaded = session.get(Balance, balance.id)
    amounts = {e.raw_currency: e.amount for e in loaded.entries}
    assert amounts["ETH"] == Decimal("1.12345678")
    assert amounts["USDT"] == Decimal("250")
    assert loaded.provider is DataProvider.CAM
    assert loaded.wallet.scope is AssetScope.ETHEREUM


def test_deleting_wallet_cascades_to_entries(session):
    wallet = Wallet(scope=AssetScope.PENDLE2)
    balance = Balance(
        wallet=wallet,
        time=datetime(2024, 12, 1, tzinfo=timezone.utc),
        provider=DataProvider.CCXT,
    )
    balance.entries.append(BalanceEntry(raw_currency="PT", amount=Decimal("3")))
    session.add(balance)
    session.commit()
    session.execute(text("DELETE FROM wallet"))
    session.commit()
    assert session.scalar(select(func.count()).select_from(BalanceEntry)) == 0
    assert session.scalar(select(func.count()).select_from(Balance)) == 0


def test_currency_relations(session):
    btc = Currency(name="BTC")
    btc.currency_maps.append(CurrencyMap(scope=AssetScope.BINANCE, raw_currency="XBT"))
    btc.price_providers.append(PriceProvider(provider=DataProvider.CAM, priority=1))
    session.add(btc)
    session.commit()
    mapping = session.scalars(select(CurrencyMap)).one()
    provider = session.scalars(select(PriceProvider)).one()
    assert mapping.currency == "BTC"
    assert provider.currency == "BTC"
    assert mapping.currency_ref is btc


def test_price_round_trip(session):
    session.add(
        Price(
            currency="BTC",
            time=datetime(2024, 12, 1, 12, tzinfo=timezone.utc),
            value=Decimal("97000.5"),
            liquidity=Decimal("0.00000001"),
            provider=DataProvider.CCXT,
        )
    )
    session.commit()
    price = session.scalars(select(Price)).one()
    assert price.value == Decimal("97000.5")
    assert price.liquidity == Decimal("0.00000001")
    assert price.provider is DataProvider.CCXT


def test_price_has_no_foreign_keys(session):
    price = Price(
        currency="UNLISTED",
        time=datetime(2024, 12, 1, tzinfo=timezone.utc),
        value=Decimal("1"),
        liquidity=Decimal("0"),
        provider=DataProvider.CAM,
    )
    session.add(price)
    session.commit()
    assert session.scalar(select(func.count()).select_from(Price)) == 1
    assert sa_inspect(price).mapper.local_table.foreign_keys == set()


def test_decimal_columns_have_source_precision():
    price = Price(currency="BTC", value=Decimal("1"), liquidity=Decimal("2"))
    entry = BalanceEntry(raw_currency="ETH", amount=Decimal("3"))
    price_columns = sa_inspect(price).mapper.columns
    entry_columns = sa_inspect(entry).mapper.columns
    for column in (price_columns["value"], price_columns["liquidity"], entry_columns["amount"]):
        assert (column.type.precision, column.type.scale) == (20, 8)


def test_foreign_keys_cascade():
    entry = BalanceEntry(raw_currency="ETH", amount=Decimal("1"))
    (fk,) = sa_inspect(entry).mapper.local_table.foreign_keys
    assert fk.target_fullname == "balance.id"
    assert fk.ondelete.upper() == "CASCADE"
    assert fk.onupdate.upper() == fk.ondelete.upper()


def test_invalid_enum_string_rejected(session):
    session.add(Wallet(scope="nowhere"))
    with pytest.raises(StatementError):
        session.commit()