"""Relational bill store backed by SQLAlchemy Core.

Works against SQLite and PostgreSQL. The upsert uses the dialect's native
`INSERT ... ON CONFLICT (id) DO UPDATE`, leaving total_amount and created_at
untouched for an existing row.
"""

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    Numeric,
    Table,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from billing.store.port import BillStore

metadata = MetaData()

bills = Table(
    "bills",
    metadata,
    Column("id", Text, primary_key=True),
    Column("customer_id", Text, nullable=False),
    Column("status", Text, nullable=False),
    Column("currency", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("closed_at", DateTime(timezone=True), nullable=True),
    Column("total_amount", Numeric(16, 4, asdecimal=False), nullable=False, server_default="0"),
    CheckConstraint("status IN ('OPEN', 'CLOSED')", name="ck_bills_status"),
    Index("idx_bills_status", "status"),
    Index("idx_bills_customer_id", "customer_id"),
)

line_items = Table(
    "line_items",
    metadata,
    Column("id", Text, primary_key=True),
    Column("bill_id", Text, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False),
    Column("description", Text, nullable=False),
    Column("amount", Numeric(16, 4, asdecimal=False), nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("idx_line_items_bill_id", "bill_id"),
)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlBillStore(BillStore):
    """Bill store over a SQLAlchemy engine."""

    def __init__(self, database_uri: str | None = None, engine: Engine | None = None) -> None:
        if engine is None:
            if not database_uri:
                raise ValueError("SqlBillStore needs a database_uri or an engine")
            connect_args = {"check_same_thread": False} if database_uri.startswith("sqlite") else {}
            engine = create_engine(database_uri, connect_args=connect_args)
        self.engine = engine

        try:
            self._insert = _INSERT_BY_DIALECT[engine.dialect.name]
        except KeyError:
            raise ValueError(f"Unsupported database dialect: {engine.dialect.name}") from None

    def create_all(self) -> None:
        metadata.create_all(self.engine)

    def drop_all(self) -> None:
        metadata.drop_all(self.engine)

    def upsert_bill(
        self,
        bill_id: str,
        customer_id: str,
        currency: str,
        status: str,
        created_at: datetime,
    ) -> None:
        statement = self._insert(bills).values(
            id=bill_id,
            customer_id=customer_id,
            currency=currency,
            status=status,
            created_at=created_at,
            total_amount=0.0,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[bills.c.id],
            set_={
                "customer_id": statement.excluded.customer_id,
                "currency": statement.excluded.currency,
                "status": statement.excluded.status,
            },
        )
        with self.engine.begin() as conn:
            conn.execute(statement)

    def save_line_item(
        self,
        line_item_id: str,
        bill_id: str,
        description: str,
        amount: float,
        created_at: datetime,
    ) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                line_items.insert().values(
                    id=line_item_id,
                    bill_id=bill_id,
                    description=description,
                    amount=amount,
                    created_at=created_at,
                )
            )

    def finalize_bill(
        self,
        bill_id: str,
        status: str,
        total_amount: float,
        closed_at: datetime,
    ) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                update(bills)
                .where(bills.c.id == bill_id)
                .values(status=status, total_amount=total_amount, closed_at=closed_at)
            )

    def fetch_bill(self, bill_id: str) -> dict | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(bills).where(bills.c.id == bill_id)).mappings().first()
            if row is None:
                return None
            items = (
                conn.execute(
                    select(line_items)
                    .where(line_items.c.bill_id == bill_id)
                    .order_by(line_items.c.created_at, line_items.c.id)
                )
                .mappings()
                .all()
            )
        return {**dict(row), "line_items": [dict(item) for item in items]}
