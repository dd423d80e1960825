"""SQLAlchemy models for accounts, documents ("requests") and revisions."""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
_AccountId = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Account(Base):
    __tablename__ = "accounts"

    id = Column(_AccountId, primary_key=True, autoincrement=True)
    api_key_hash = Column(String(64), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = Column(DateTime(timezone=True), nullable=True)


class RequestRecord(Base):
    """A document. ``latest_rev`` points at the newest live revision;
    ``rev_seq`` is the highest revision number ever minted for it."""

    __tablename__ = "requests"

    uuid = Column(Uuid(as_uuid=True), primary_key=True)
    account_id = Column(_AccountId, ForeignKey("accounts.id"), nullable=False)
    latest_rev = Column(Integer, nullable=False)
    rev_seq = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_requests_account_created", "account_id", "created_at"),
    )


class RequestRevision(Base):
    __tablename__ = "request_revisions"

    request_uuid = Column(Uuid(as_uuid=True), ForeignKey("requests.uuid"), primary_key=True)
    rev_number = Column(Integer, primary_key=True)
    content_type = Column(String(64), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    sha256 = Column(String(64), nullable=False)
    object_key = Column(String(512), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
