"""Schema migrations for the asset database and the ``migrate`` command."""

from __future__ import annotations

import argparse
import os
import sys
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Engine,
    Enum,
    ForeignKeyConstraint,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    delete,
    inspect,
    insert,
    select,
    text,
)
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from hammer.models import AssetScope, DataProvider

__all__ = [
    "MigrationError",
    "MigrationStatus",
    "CreateWalletTables",
    "CreateCurrencyTables",
    "CreateBalanceTables",
    "Migrator",
    "main",
]

MIGRATIONS_TABLE = "seaql_migrations"


class MigrationError(Exception):
    """Raised when the recorded migrations do not match the known ones."""


@dataclass(frozen=True)
class MigrationStatus:
    """Whether one migration has been applied to the database."""

    name: str
    applied: bool


# Every table the migrations create, described once so that foreign keys
# between tables of different migrations resolve.
_schema = MetaData()

_asset_scope = Enum(
    *(scope.value for scope in AssetScope), name="asset_scope", metadata=_schema
)
_data_provider = Enum(
    *(provider.value for provider in DataProvider), name="data_provider", metadata=_schema
)


def _cascade(columns: List[str], targets: List[str], name: str) -> ForeignKeyConstraint:
    return ForeignKeyConstraint(
        columns, targets, name=name, ondelete="CASCADE", onupdate="CASCADE"
    )


def _pk() -> Column:
    return Column("id", Integer, primary_key=True, autoincrement=True, nullable=False)


_wallet = Table(
    "wallet",
    _schema,
    _pk(),
    Column("parent_id", Integer, nullable=True),
    Column("scope", _asset_scope, nullable=False),
    _cascade(["parent_id"], ["wallet.id"], "fk-wallet-parent_id"),
)

_wallet_metadata = Table(
    "wallet_metadata",
    _schema,
    _pk(),
    Column("wallet_id", Integer, nullable=False),
    Column("alias", String, nullable=False),
    # Nullable for centralised-exchange wallets.
    Column("address", String, nullable=True),
    _cascade(["wallet_id"], ["wallet.id"], "fk-wallet_metadata-wallet_id"),
)

_currency = Table(
    "currency",
    _schema,
    Column("name", String, primary_key=True, autoincrement=False, nullable=False),
)

_currency_map = Table(
    "currency_map",
    _schema,
    _pk(),
    Column("scope", _asset_scope, nullable=False),
    Column("raw_currency", String, nullable=False),
    Column("currency", String, nullable=False),
    _cascade(["currency"], ["currency.name"], "fk-currency_map-currency"),
)

_price = Table(
    "price",
    _schema,
    _pk(),
    Column("currency", String, nullable=False),
    Column("time", DateTime(timezone=True), nullable=False),
    Column("value", Numeric(20, 8), nullable=False),
    Column("liquidity", Numeric(20, 8), nullable=False),
    Column("provider", _data_provider, nullable=False),
)

_price_provider = Table(
    "price_provider",
    _schema,
    _pk(),
    Column("currency", String, nullable=False),
    Column("provider", _data_provider, nullable=False),
    Column("priority", Integer, nullable=False),
    _cascade(["currency"], ["currency.name"], "fk-price_provider-currency"),
)

_balance = Table(
    "balance",
    _schema,
    _pk(),
    Column("wallet_id", Integer, nullable=False),
    Column("time", DateTime(timezone=True), nullable=False),
    Column("provider", _data_provider, nullable=False),
    _cascade(["wallet_id"], ["wallet.id"], "fk-balance-wallet_id"),
)

_balance_entry = Table(
    "balance_entry",
    _schema,
    _pk(),
    Column("balance_id", Integer, nullable=False),
    Column("raw_currency", String, nullable=False),
    Column("amount", Numeric(20, 8), nullable=False),
    _cascade(["balance_id"], ["balance.id"], "fk-balance_entry-balance_id"),
)

_balance_priority = Table(
    "balance_priority",
    _schema,
    _pk(),
    Column("wallet_id", Integer, nullable=False),
    Column("provider", _data_provider, nullable=False),
    Column("priority", Integer, nullable=False),
    _cascade(["wallet_id"], ["wallet.id"], "fk-balance_priority-wallet_id"),
)

_tracking = Table(
    MIGRATIONS_TABLE,
    MetaData(),
    Column("version", String, primary_key=True),
    Column("applied_at", BigInteger, nullable=False),
)


class _Migration:
    """A named, reversible schema change."""

    name: str = ""

    def up(self, connection: Connection) -> None:
        raise NotImplementedError

    def down(self, connection: Connection) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class CreateWalletTables(_Migration):
    """Enum types plus the wallet and wallet_metadata tables."""

    name = "m20241201_000001_create_wallet_tables"

    def up(self, connection: Connection) -> None:
        _asset_scope.create(connection)
        _data_provider.create(connection)
        _wallet.create(connection, checkfirst=True)
        _wallet_metadata.create(connection, checkfirst=True)

    def down(self, connection: Connection) -> None:
        _wallet_metadata.drop(connection)
        _wallet.drop(connection)
        _data_provider.drop(connection)
        _asset_scope.drop(connection)


class CreateCurrencyTables(_Migration):
    """The currency, currency_map, price and price_provider tables."""

    name = "m20241201_000002_create_currency_tables"

    def up(self, connection: Connection) -> None:
        for table in (_currency, _currency_map, _price, _price_provider):
            table.create(connection, checkfirst=True)

    def down(self, connection: Connection) -> None:
        for table in (_price_provider, _price, _currency_map, _currency):
            table.drop(connection)


class CreateBalanceTables(_Migration):
    """The balance, balance_entry and balance_priority tables."""

    name = "m20241201_000003_create_balance_tables"

    def up(self, connection: Connection) -> None:
        for table in (_balance, _balance_entry, _balance_priority):
            table.create(connection, checkfirst=True)

    def down(self, connection: Connection) -> None:
        for table in (_balance_priority, _balance_entry, _balance):
            table.drop(connection)


def _check_steps(steps: Optional[int]) -> None:
    if steps is not None and steps < 0:
        raise ValueError(f"number of steps must not be negative, got {steps}")


class Migrator:
    """Applies and rolls back the migrations, recording them in the database."""

    def __init__(self, bind: Union[Engine, str]):
        self.engine = create_engine(bind) if isinstance(bind, str) else bind

    def migrations(self) -> List[_Migration]:
        """All migrations, oldest first."""
        return [CreateWalletTables(), CreateCurrencyTables(), CreateBalanceTables()]

    def _applied(self) -> set[str]:
        with self.engine.begin() as conn:
            _tracking.create(conn, checkfirst=True)
            versions = set(conn.execute(select(_tracking.c.version)).scalars())
        known = {migration.name for migration in self.migrations()}
        for version in sorted(versions - known):
            raise MigrationError(
                f"Migration file of version '{version}' is missing, "
                "this migration has been applied but its file is missing"
            )
        return versions

    def status(self) -> List[MigrationStatus]:
        """Every migration in order, with whether it has been applied."""
        applied = self._applied()
        return [MigrationStatus(m.name, m.name in applied) for m in self.migrations()]

    def up(self, steps: Optional[int] = None) -> List[str]:
        """Apply pending migrations, at most ``steps`` of them; return their names."""
        _check_steps(steps)
        applied = self._applied()
        pending = [m for m in self.migrations() if m.name not in applied]
        if steps is not None:
            pending = pending[:steps]
        for migration in pending:
            with self.engine.begin() as conn:
                migration.up(conn)
                conn.execute(
                    insert(_tracking).values(
                        version=migration.name, applied_at=int(time.time())
                    )
                )
        return [migration.name for migration in pending]

    def down(self, steps: Optional[int] = None) -> List[str]:
        """Roll back applied migrations, newest first; ``None`` rolls back all."""
        _check_steps(steps)
        applied = self._applied()
        targets = [m for m in reversed(self.migrations()) if m.name in applied]
        if steps is not None:
            targets = targets[:steps]
        for migration in targets:
            with self.engine.begin() as conn:
                migration.down(conn)
                conn.execute(delete(_tracking).where(_tracking.c.version == migration.name))
        return [migration.name for migration in targets]

    def fresh(self) -> List[str]:
        """Drop every table in the database, then apply all migrations."""
        with self.engine.begin() as conn:
            existing = MetaData()
            existing.reflect(conn)
            existing.drop_all(conn)
            if conn.dialect.name == "postgresql":
                quote = conn.dialect.identifier_preparer.quote
                for enum_info in inspect(conn).get_enums():
                    conn.execute(text(f"DROP TYPE IF EXISTS {quote(enum_info['name'])} CASCADE"))
        return self.up()

    def refresh(self) -> List[str]:
        """Roll back all applied migrations, then apply them all again."""
        self.down()
        return self.up()

    def reset(self) -> List[str]:
        """Roll back all applied migrations."""
        return self.down()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="migrate", description="Manage the database schema.")
    parser.add_argument(
        "-u",
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="database URL (default: $DATABASE_URL)",
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("status", help="show which migrations are applied")
    up = commands.add_parser("up", help="apply pending migrations")
    up.add_argument("-n", "--num", type=int, default=None, help="number of migrations to apply")
    down = commands.add_parser("down", help="roll back applied migrations")
    down.add_argument("-n", "--num", type=int, default=1, help="number of migrations to roll back")
    commands.add_parser("fresh", help="drop all tables, then apply all migrations")
    commands.add_parser("refresh", help="roll back all migrations, then apply them again")
    commands.add_parser("reset", help="roll back all applied migrations")
    return parser


def _report(verb: str, names: Sequence[str], empty: str) -> None:
    if not names:
        print(empty)
    for name in names:
        print(f"{verb} migration '{name}'")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the migration command line; return the exit status."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.database_url:
        parser.error("a database URL is required: pass --database-url or set DATABASE_URL")
    command = args.command or "up"
    steps = getattr(args, "num", None)

    migrator = Migrator(args.database_url)
    try:
        if command == "status":
            for entry in migrator.status():
                print(f"{'Applied' if entry.applied else 'Pending':<8} {entry.name}")
        elif command == "up":
            _report("Applied", migrator.up(steps), "No pending migrations")
        elif command == "down":
            _report("Rolled back", migrator.down(steps), "No applied migrations")
        elif command == "fresh":
            _report("Applied", migrator.fresh(), "No pending migrations")
        elif command == "refresh":
            _report("Applied", migrator.refresh(), "No pending migrations")
        elif command == "reset":
            _report("Rolled back", migrator.reset(), "No applied migrations")
    except (MigrationError, ValueError, SQLAlchemyError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        migrator.engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())