"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, false, func

from order_notifier.storage import Base


class Customer(Base):
    """
    A customer, keyed by canonical phone without the country prefix.

    Table: customers
    Primary Key: phone
    """
    __tablename__ = "customers"

    phone = Column(String(20), primary_key=True)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False)
    reference = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Order(Base):
    """
    An accepted order. The payload is written once and never updated; only
    the two notification flags move, and only from false to true.

    Table: orders
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_phone = Column(
        String(20),
        ForeignKey("customers.phone"),
        nullable=False,
        index=True,
    )
    payload = Column(JSON, nullable=False)
    confirmation_sent = Column(Boolean, nullable=False, default=False, server_default=false())
    delivery_sent = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
