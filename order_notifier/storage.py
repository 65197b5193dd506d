import logging
from typing import Generator, Optional

from sqlalchemy import create_engine, event, false, inspect, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from order_notifier.config import settings
from order_notifier.errors import ReferentialError, StorageError

logger = logging.getLogger(__name__)

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    pool_pre_ping=not _is_sqlite,
    echo=False,
)

if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # SQLite ignores REFERENCES clauses unless asked per connection
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

NOTIFICATION_FLAGS = {
    "confirmation": "confirmation_sent",
    "delivery": "delivery_sent",
}


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug("Initializing database")
    try:
        # Import models to register them with Base.metadata
        from order_notifier import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database tables verified/created")
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use, whatever happened.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and both tables exist, False otherwise.
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            inspector = inspect(connection)
            missing = [name for name in ("customers", "orders") if not inspector.has_table(name)]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False


def active_connections() -> int:
    """Number of connections currently checked out of the pool."""
    checkedout = getattr(engine.pool, "checkedout", None)
    return checkedout() if callable(checkedout) else 0


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise StorageError(f"Unsupported database dialect: {dialect}")


# =============================================================================
# Customer / Order Repository Functions
# =============================================================================

def upsert_customer(
    db: Session,
    phone: str,
    name: str,
    address: str,
    reference: Optional[str] = None,
) -> None:
    """
    Insert a customer or update name/address/reference in place.

    Runs inside the caller's transaction; nothing is committed here.
    """
    from order_notifier.models import Customer

    insert = _insert_for(db)
    statement = insert(Customer).values(
        phone=phone,
        name=name,
        address=address,
        reference=reference,
    )
    statement = statement.on_conflict_do_update(
        index_elements=[Customer.phone],
        set_={
            "name": statement.excluded.name,
            "address": statement.excluded.address,
            "reference": statement.excluded.reference,
        },
    )
    try:
        db.execute(statement)
    except SQLAlchemyError as e:
        logger.error(f"Failed to upsert customer {phone}: {e}")
        raise StorageError() from e
    logger.info(f"Customer saved/updated: {name}")


def insert_order(db: Session, phone: str, payload: dict) -> int:
    """
    Insert an order for an existing customer and return its id.

    Runs inside the caller's transaction; the row is flushed so the id is
    assigned, but not committed.

    Raises:
        ReferentialError: no customer row for this phone
        StorageError: any other statement failure
    """
    from order_notifier.models import Order

    order = Order(customer_phone=phone, payload=payload)
    db.add(order)
    try:
        db.flush()
    except IntegrityError as e:
        logger.error(f"Order references unknown customer {phone}: {e}")
        raise ReferentialError() from e
    except SQLAlchemyError as e:
        logger.error(f"Failed to insert order for {phone}: {e}")
        raise StorageError() from e
    return order.id


def save_order(
    db: Session,
    phone: str,
    name: str,
    address: str,
    reference: Optional[str],
    payload: dict,
) -> int:
    """
    Upsert the customer and insert the order in a single transaction.

    The customer row is written first so the order's foreign key holds.
    Rolls back on any failure.
    """
    try:
        upsert_customer(db, phone, name, address, reference)
        order_id = insert_order(db, phone, payload)
        db.commit()
    except StorageError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to commit order for {phone}: {e}")
        raise StorageError() from e

    logger.info(f"Order #{order_id} stored")
    return order_id


def fetch_customer(db: Session, phone: str):
    """
    Look up a customer by stored phone key.

    Returns:
        Customer object if found, None otherwise
    """
    from order_notifier.models import Customer

    try:
        customer = db.get(Customer, phone)
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch customer {phone}: {e}")
        raise StorageError("Internal server error.") from e
    logger.debug(f"Customer lookup {phone}: {'found' if customer else 'not found'}")
    return customer


def fetch_order_history(db: Session, phone: str, limit: int = 20) -> list[dict]:
    """
    Most recent orders for a customer, newest first.

    Each order is projected to its id, creation time, total and line items.
    An unknown phone yields an empty list.
    """
    from order_notifier.models import Order

    query = (
        select(Order.id, Order.payload, Order.created_at)
        .where(Order.customer_phone == phone)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
    )
    try:
        rows = db.execute(query).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch order history for {phone}: {e}")
        raise StorageError("Internal error while fetching order history.") from e

    history = []
    for row in rows:
        payload = row.payload or {}
        history.append({
            "order_id": row.id,
            "created_at": row.created_at,
            "total": payload.get("total"),
            "items": [
                {
                    "name": item.get("name"),
                    "quantity": item.get("quantity"),
                    "observation": item.get("observation") or "",
                }
                for item in payload.get("cart", [])
            ],
        })
    logger.info(f"Order history: {len(history)} order(s) for {phone}")
    return history


def mark_notification_sent(db: Session, order_id: int, leg: str) -> bool:
    """
    Record that a follow-up leg was delivered. Flags never go back to false.

    Returns:
        True if an order row was updated
    """
    from order_notifier.models import Order

    column = getattr(Order, NOTIFICATION_FLAGS[leg])
    try:
        result = db.execute(
            update(Order)
            .where(Order.id == order_id, column == false())
            .values({column: True})
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to flag {leg} for order #{order_id}: {e}")
        raise StorageError() from e
    return result.rowcount > 0
