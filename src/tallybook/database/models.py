"""SQLAlchemy models for tallybook database."""

from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, declared_attr, relationship, sessionmaker, Session

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(UTC)


class Vendor(Base):
    """Vendor model. ``outstanding_payable`` is the running balance."""

    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    outstanding_payable = Column(Numeric(14, 2), default=0, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    procurements = relationship("Procurement", back_populates="vendor")


class Client(Base):
    """Client model. ``outstanding_balance`` is the running balance."""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    outstanding_balance = Column(Numeric(14, 2), default=0, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    sales = relationship("Sale", back_populates="client")


class InventoryColumns:
    """Columns shared by every inventory table."""

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    current_stock = Column(Numeric(14, 3), default=0, nullable=False)
    cost_price = Column(Numeric(14, 4), default=0, nullable=False)
    last_received_at = Column(Date, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class RawMaterial(InventoryColumns, Base):
    __tablename__ = "raw_materials"


class TradingGood(InventoryColumns, Base):
    __tablename__ = "trading_goods"


class FinishedGood(InventoryColumns, Base):
    __tablename__ = "finished_goods"

    bom = relationship("BomComponent", back_populates="finished_good", cascade="all, delete-orphan")


class BomComponent(Base):
    """Raw material quantity consumed per unit of finished good."""

    __tablename__ = "bom_components"

    id = Column(Integer, primary_key=True)
    finished_good_id = Column(Integer, ForeignKey("finished_goods.id"), nullable=False)
    raw_material_id = Column(Integer, ForeignKey("raw_materials.id"), nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False)

    __table_args__ = (UniqueConstraint("finished_good_id", "raw_material_id", name="uq_bom_component"),)

    finished_good = relationship("FinishedGood", back_populates="bom")


class CostLot(Base):
    """Append-only receipt history for an inventory item."""

    __tablename__ = "cost_lots"

    id = Column(Integer, primary_key=True)
    item_type = Column(String, nullable=False)
    item_id = Column(Integer, nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False)
    reversed_quantity = Column(Numeric(14, 3), default=0, nullable=False)
    unit_cost = Column(Numeric(14, 4), nullable=False)
    received_at = Column(Date, nullable=False)
    source_type = Column(String, nullable=True)
    source_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class LineItemColumns:
    """Columns shared by procurement and sale line items."""

    id = Column(Integer, primary_key=True)
    position = Column(Integer, nullable=False)
    item_type = Column(String, nullable=False)
    item_id = Column(Integer, nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)


class ProcurementItem(LineItemColumns, Base):
    __tablename__ = "procurement_items"

    @declared_attr
    def procurement_id(cls):
        return Column(Integer, ForeignKey("procurements.id"), nullable=False)

    procurement = relationship("Procurement", back_populates="items")


class SaleItem(LineItemColumns, Base):
    __tablename__ = "sale_items"

    @declared_attr
    def sale_id(cls):
        return Column(Integer, ForeignKey("sales.id"), nullable=False)

    sale = relationship("Sale", back_populates="items")


class Procurement(Base):
    """Purchase transaction model."""

    __tablename__ = "procurements"

    id = Column(Integer, primary_key=True)
    procurement_type = Column(String, nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    procurement_date = Column(Date, nullable=False)
    status = Column(String, nullable=False)
    subtotal = Column(Numeric(14, 2), default=0, nullable=False)
    tax_percentage = Column(Numeric(5, 2), default=0, nullable=False)
    tax_amount = Column(Numeric(14, 2), default=0, nullable=False)
    total_amount = Column(Numeric(14, 2), default=0, nullable=False)
    total_paid = Column(Numeric(14, 2), default=0, nullable=False)
    remaining_amount = Column(Numeric(14, 2), default=0, nullable=False)
    payment_status = Column(String, nullable=False)
    invoice_number = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    received_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    vendor = relationship("Vendor", back_populates="procurements")
    items = relationship(
        "ProcurementItem",
        back_populates="procurement",
        cascade="all, delete-orphan",
        order_by="ProcurementItem.position",
    )


class Sale(Base):
    """Sale transaction model."""

    __tablename__ = "sales"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    invoice_number = Column(String, unique=True, nullable=False)
    sale_date = Column(Date, nullable=False)
    status = Column(String, nullable=False)
    subtotal = Column(Numeric(14, 2), default=0, nullable=False)
    discount = Column(Numeric(14, 2), default=0, nullable=False)
    tax_percentage = Column(Numeric(5, 2), default=0, nullable=False)
    tax_amount = Column(Numeric(14, 2), default=0, nullable=False)
    total_amount = Column(Numeric(14, 2), default=0, nullable=False)
    total_paid = Column(Numeric(14, 2), default=0, nullable=False)
    remaining_amount = Column(Numeric(14, 2), default=0, nullable=False)
    payment_status = Column(String, nullable=False)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    client = relationship("Client", back_populates="sales")
    items = relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.position",
    )


class Asset(Base):
    """Fixed asset model with derived payment fields."""

    __tablename__ = "assets"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    purchase_price = Column(Numeric(14, 2), nullable=False)
    total_paid = Column(Numeric(14, 2), default=0, nullable=False)
    remaining_amount = Column(Numeric(14, 2), default=0, nullable=False)
    payment_status = Column(String, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class Payment(Base):
    """Payment model."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    amount = Column(Numeric(14, 2), nullable=False)
    payment_method = Column(String, nullable=False)
    payment_date = Column(Date, nullable=False)
    transaction_type = Column(String, nullable=False)
    account_type = Column(String, nullable=False)
    party_id = Column(Integer, nullable=True)
    party_type = Column(String, nullable=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=True, index=True)
    procurement_id = Column(Integer, ForeignKey("procurements.id"), nullable=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=True, index=True)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class BalanceEntry(Base):
    """Append-only running-balance adjustment."""

    __tablename__ = "balance_entries"

    id = Column(Integer, primary_key=True)
    counterparty_kind = Column(String, nullable=False)
    counterparty_id = Column(Integer, nullable=False, index=True)
    requested_delta = Column(Numeric(14, 2), nullable=False)
    applied_delta = Column(Numeric(14, 2), nullable=False)
    balance_after = Column(Numeric(14, 2), nullable=False)
    reason = Column(String, nullable=False)
    source_type = Column(String, nullable=True)
    source_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


class AuditLog(Base):
    """Append-only audit record."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    details = Column(String, nullable=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    performed_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


def _enable_sqlite_savepoints(engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so SAVEPOINT works."""

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
