"""
Tribunal durable store.

Holds the three tables the pipeline reads and writes:
- price_cache: market price per item name with a freshness timestamp
- inventory_valuations: last computed valuation per suspect SteamID64
- submissions: the slice of a submission record the pipeline consults/updates

Uses SQLite by default with SQLAlchemy ORM, so any SQLAlchemy URL works.
All writes are upserts keyed by natural key; concurrent writers converge
with last-write-wins.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tribunal.core.schemas import InventoryValuation, TopItem

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# =============================================================================
# Database Models
# =============================================================================


class PriceCacheEntry(Base):
    """Last known market price of one item."""

    __tablename__ = "price_cache"

    market_hash_name = Column(String(255), primary_key=True)
    price_cents = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, index=True)


class InventoryValuationRecord(Base):
    """Cached valuation of a player's inventory."""

    __tablename__ = "inventory_valuations"

    steam_id = Column(String(20), primary_key=True)
    value_cents = Column(Integer, nullable=True)
    currency = Column(String(8), nullable=True)
    error = Column(Text, nullable=True)
    top_items_json = Column(Text, default="[]")
    item_count = Column(Integer, default=0)
    priced_count = Column(Integer, default=0)
    updated_at = Column(DateTime(timezone=True), default=_utc_now)

    def to_valuation(self) -> InventoryValuation:
        top_items = [TopItem(**item) for item in json.loads(self.top_items_json or "[]")]
        return InventoryValuation(
            value_cents=self.value_cents,
            currency=self.currency,
            error=self.error,
            top_items=top_items,
            item_count=self.item_count or 0,
            priced_count=self.priced_count or 0,
            updated_at=_as_utc(self.updated_at),
        )


class Submission(Base):
    """Evidence submission fields used by the pipeline."""

    __tablename__ = "submissions"

    id = Column(String(64), primary_key=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now)
    submitter_steamid64 = Column(String(20), nullable=True)
    demo_object_key = Column(String(500), nullable=True)
    map = Column(String(50), nullable=True)
    suspected_steamid64 = Column(String(20), nullable=True, index=True)

    inventory_value_cents = Column(Integer, nullable=True)
    inventory_value_currency = Column(String(8), nullable=True)
    inventory_value_updated_at = Column(DateTime(timezone=True), nullable=True)
    inventory_value_error = Column(Text, nullable=True)
    inventory_top_items_json = Column(Text, nullable=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        updated_at = _as_utc(self.inventory_value_updated_at)
        return {
            "id": self.id,
            "map": self.map,
            "suspected_steamid64": self.suspected_steamid64,
            "demo_object_key": self.demo_object_key,
            "inventory_value_cents": self.inventory_value_cents,
            "inventory_value_currency": self.inventory_value_currency,
            "inventory_value_updated_at": updated_at.isoformat() if updated_at else None,
            "inventory_value_error": self.inventory_value_error,
            "inventory_top_items": json.loads(self.inventory_top_items_json or "[]"),
        }


# =============================================================================
# Database Manager
# =============================================================================


def _chunked(items: list, size: int) -> Iterator[list]:
    size = max(size, 1)
    for start in range(0, len(items), size):
        yield items[start : start + size]


class DatabaseManager:
    """Manages database connections and operations."""

    def __init__(self, database_url: str | None = None):
        """Initialize database connection."""
        if database_url is None:
            from tribunal.core.config import get_config

            database_url = get_config().resolved_database_url()

        if database_url.startswith("sqlite:///"):
            Path(database_url.removeprefix("sqlite:///")).parent.mkdir(
                parents=True, exist_ok=True
            )
            self.engine = create_engine(
                database_url,
                echo=False,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(database_url, echo=False)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        logger.info(f"Database initialized at: {self.engine.url}")

    def get_session(self) -> Session:
        """Get a database session."""
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on error."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # =========================================================================
    # Price cache
    # =========================================================================

    def get_prices(
        self, names: Iterable[str], fresh_after: datetime, chunk_size: int = 500
    ) -> dict[str, int]:
        """Prices for ``names`` updated after ``fresh_after``; stale rows are skipped."""
        wanted = list(dict.fromkeys(names))
        prices: dict[str, int] = {}
        if not wanted:
            return prices

        session = self.get_session()
        try:
            for chunk in _chunked(wanted, chunk_size):
                rows = (
                    session.query(PriceCacheEntry)
                    .filter(PriceCacheEntry.market_hash_name.in_(chunk))
                    .all()
                )
                for row in rows:
                    updated_at = _as_utc(row.updated_at)
                    if updated_at is not None and updated_at > fresh_after:
                        prices[row.market_hash_name] = row.price_cents
            return prices
        finally:
            session.close()

    def upsert_prices(self, prices: dict[str, int], chunk_size: int = 500) -> int:
        """Insert or refresh prices, committing one chunk at a time."""
        items = list(prices.items())
        now = _utc_now()
        for chunk in _chunked(items, chunk_size):
            with self.session_scope() as session:
                for name, cents in chunk:
                    session.merge(
                        PriceCacheEntry(market_hash_name=name, price_cents=cents, updated_at=now)
                    )
        logger.debug(f"Upserted {len(items)} prices")
        return len(items)

    # =========================================================================
    # Valuations
    # =========================================================================

    def get_valuation(self, steam_id: str) -> InventoryValuation | None:
        session = self.get_session()
        try:
            record = session.get(InventoryValuationRecord, steam_id)
            return record.to_valuation() if record else None
        finally:
            session.close()

    def save_valuation(self, steam_id: str, valuation: InventoryValuation) -> None:
        with self.session_scope() as session:
            session.merge(
                InventoryValuationRecord(
                    steam_id=steam_id,
                    value_cents=valuation.value_cents,
                    currency=valuation.currency,
                    error=valuation.error,
                    top_items_json=json.dumps([t.to_dict() for t in valuation.top_items]),
                    item_count=valuation.item_count,
                    priced_count=valuation.priced_count,
                    updated_at=valuation.updated_at or _utc_now(),
                )
            )

    # =========================================================================
    # Submissions
    # =========================================================================

    def create_submission(
        self,
        submission_id: str,
        suspected_steamid64: str | None = None,
        demo_object_key: str | None = None,
        map_name: str | None = None,
        submitter_steamid64: str | None = None,
    ) -> Submission:
        with self.session_scope() as session:
            submission = Submission(
                id=submission_id,
                suspected_steamid64=suspected_steamid64,
                demo_object_key=demo_object_key,
                map=map_name,
                submitter_steamid64=submitter_steamid64,
            )
            session.merge(submission)
        return submission

    def get_submission(self, submission_id: str) -> Submission | None:
        session = self.get_session()
        try:
            return session.get(Submission, submission_id)
        finally:
            session.close()

    def record_submission_valuation(
        self, submission_id: str, valuation: InventoryValuation
    ) -> bool:
        """Copy valuation fields onto a submission. Returns False if it doesn't exist."""
        with self.session_scope() as session:
            submission = session.get(Submission, submission_id)
            if submission is None:
                return False
            submission.inventory_value_cents = valuation.value_cents
            submission.inventory_value_currency = valuation.currency
            submission.inventory_value_updated_at = valuation.updated_at or _utc_now()
            submission.inventory_value_error = valuation.error
            submission.inventory_top_items_json = json.dumps(
                [t.to_dict() for t in valuation.top_items]
            )
            return True
