from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from hammer.types import (
    AssetScope,
    DataProvider,
    NewBalance,
    NewBalanceEntry,
    NewBalancePriority,
    NewCurrency,
    NewCurrencyMap,
    NewPrice,
    NewPricePriority,
    NewWallet,
    NewWalletMetadata,
    PongResponse,
    V3Error,
)


def test_enum_serialized_as_variant_name():
    data = NewWallet(scope=AssetScope.BINANCE).to_dict()
    assert data == {"scope": "Binance", "parent_id": None}


def test_provider_variant_name():
    data = NewBalancePriority(wallet_id=1, provider=DataProvider.CAM, priority=0).to_dict()
    assert data["provider"] == "Cam"


@pytest.mark.parametrize(
    "record",
    [
        NewWallet(scope=AssetScope.PENDLE2, parent_id=4),
        NewWalletMetadata(wallet_id=3, alias="desk", address="0xabc"),
        NewBalance(
            wallet_id=2,
            time=datetime(2024, 12, 1, 8, 30, tzinfo=timezone(timedelta(hours=9))),
            provider=DataProvider.DEBANK,
        ),
        NewBalanceEntry(balance_id=7, raw_currency="BTC", amount=Decimal("0.12345678")),
        NewPrice(
            currency="ETH",
            time=datetime(2024, 12, 1, tzinfo=timezone.utc),
            value=Decimal("3600.25"),
            liquidity=Decimal("1000000"),
            provider=DataProvider.CCXT,
        ),
        NewCurrency(name="USDT"),
        NewCurrencyMap(scope=AssetScope.STAKESTONE, raw_currency="STONE", currency="ETH"),
        NewBalancePriority(wallet_id=1, provider=DataProvider.CAM, priority=3),
        NewPricePriority(currency="BTC", provider=DataProvider.CCXT, priority=1),
        PongResponse(pong="pong"),
        V3Error(code="E01", message="bad request"),
    ],
)
def test_round_trip(record):
    assert type(record).from_dict(record.to_dict()) == record


def test_decimal_and_time_dumped_as_strings():
    when = datetime(2024, 12, 1, tzinfo=timezone.utc)
    data = NewPrice(
        currency="BTC", time=when, value=Decimal("1.5"), liquidity=Decimal("2"), provider=DataProvider.CAM
    ).to_dict()
    assert data["value"] == "1.5"
    assert data["liquidity"] == "2"
    assert datetime.fromisoformat(data["time"]) == when


def test_trailing_z_timestamp_accepted():
    balance = NewBalance.from_dict({"wallet_id": 1, "time": "2024-12-01T00:00:00Z", "provider": "Cam"})
    assert balance.time == datetime(2024, 12, 1, tzinfo=timezone.utc)
    assert balance.provider is DataProvider.CAM


def test_missing_optional_field_defaults_to_none():
    meta = NewWalletMetadata.from_dict({"wallet_id": 5, "alias": "cold"})
    assert meta.address is None
    assert meta.wallet_id == 5


def test_unknown_keys_ignored():
    pong = PongResponse.from_dict({"pong": "ok", "extra": 1})
    assert pong == PongResponse(pong="ok")


def test_missing_required_field_raises():
    with pytest.raises(ValueError, match="message"):
        V3Error.from_dict({"code": "E01"})


def test_null_required_field_raises():
    with pytest.raises(ValueError):
        NewCurrency.from_dict({"name": None})


def test_unknown_enum_variant_raises():
    with pytest.raises(ValueError, match="AssetScope"):
        NewWallet.from_dict({"scope": "Kraken"})


def test_wrong_integer_type_raises():
    with pytest.raises(ValueError):
        NewBalancePriority.from_dict({"wallet_id": "1", "provider": "Cam", "priority": 0})


def test_bad_decimal_raises():
    with pytest.raises(ValueError):
        NewBalanceEntry.from_dict({"balance_id": 1, "raw_currency": "BTC", "amount": "lots"})


def test_non_mapping_rejected():
    with pytest.raises(ValueError):
        PongResponse.from_dict(["pong"])