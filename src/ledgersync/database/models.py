"""SQLAlchemy models for ledgersync database."""

import uuid
from datetime import datetime, UTC

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    Float,
    Boolean,
    Index,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class ImportRule(Base):
    """Learned payee to category rule."""

    __tablename__ = "import_rules"

    id = Column(String(36), primary_key=True, default=_new_id)
    payee_pattern = Column(String(200), nullable=False)
    match_type = Column(String(20), nullable=False)
    priority = Column(Integer, nullable=False, default=1)
    suggested_category = Column(String, nullable=False)
    confidence = Column(Float, nullable=False, default=0.6)
    times_applied = Column(Integer, nullable=False, default=0)
    times_accepted = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (Index("ix_import_rules_active_priority", "is_active", "priority"),)


class ColumnMappingRule(Base):
    """Saved CSV column mapping for a bank."""

    __tablename__ = "column_mapping_rules"

    id = Column(String(36), primary_key=True, default=_new_id)
    bank_identifier = Column(String(100), nullable=False)
    bank_match_pattern = Column(String(200), nullable=True)
    header_signature = Column(Text, nullable=False, index=True)
    # JSON object of header -> field type
    column_mappings = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    last_used_at = Column(DateTime, default=_now, nullable=False)
    times_used = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)


class CsvImport(Base):
    """Completed CSV import run."""

    __tablename__ = "csv_imports"

    id = Column(String(36), primary_key=True, default=_new_id)
    file_name = Column(String, nullable=False)
    imported_at = Column(DateTime, default=_now, nullable=False)
    total_rows = Column(Integer, nullable=False)
    successful_imports = Column(Integer, nullable=False)
    duplicates_skipped = Column(Integer, nullable=False)
    error_count = Column(Integer, nullable=False)
    bank_format = Column(String, nullable=True)
    column_mapping = Column(Text, nullable=False)
    file_hash = Column(String(64), nullable=False, index=True)
    user_id = Column(String, nullable=False)


class Transaction(Base):
    """Cached projection of a ledger transaction."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    transaction_code = Column(String(36), nullable=False, unique=True)
    date = Column(Date, nullable=False)
    payee = Column(String, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    account = Column(String, nullable=False)
    category_account = Column(String, nullable=False)
    memo = Column(String, nullable=True)
    # Not unique: a collision is how duplicates are detected
    hash = Column(String(64), nullable=False, index=True)
    cached_at = Column(DateTime, default=_now, nullable=False)


class LedgerFileAudit(Base):
    """Append-only ledger file audit record."""

    __tablename__ = "ledger_file_audits"

    pk = Column(Integer, primary_key=True)
    id = Column(String(36), unique=True, nullable=False, default=_new_id)
    timestamp = Column(DateTime, default=_now, nullable=False, index=True)
    operation = Column(String(20), nullable=False)
    file_hash_before = Column(String(64), nullable=False)
    file_hash_after = Column(String(64), nullable=False)
    transaction_count = Column(Integer, nullable=False)
    balance_checksum_cents = Column(Integer, nullable=False)
    triggered_by = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)
    related_entity_id = Column(String(36), nullable=True)
    user_id = Column(String, nullable=False)
    file_path = Column(String, nullable=False, index=True)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
