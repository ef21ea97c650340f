"""
SQLAlchemy ORM models for the Storefront Order Service.

Tables:
    orders       — one row per paid order (order_id is the dedup key)
    admin_users  — credentials for the admin panel
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, JSON, Index,
)

from database import Base


class OrderRow(Base):
    """
    Durable order record.

    Shipping is stored flattened (customer_first_name … shipping_country) so
    the admin panel can filter without JSON functions; items stay as JSON.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(255), unique=True, nullable=False, index=True)
    payment_intent_id = Column(String(255), nullable=True)

    # Customer
    customer_email = Column(String(320), nullable=True)
    customer_name = Column(String(200), nullable=False, default="Customer")
    customer_first_name = Column(String(100), nullable=True)
    customer_last_name = Column(String(100), nullable=True)
    customer_phone = Column(String(50), nullable=True)

    # Shipping address
    shipping_address = Column(String(500), nullable=True)
    shipping_city = Column(String(100), nullable=True)
    shipping_state = Column(String(100), nullable=True)
    shipping_zip_code = Column(String(20), nullable=True)
    shipping_country = Column(String(50), nullable=True)

    items = Column(JSON, nullable=False, default=list)

    # Money (2dp)
    subtotal = Column(Numeric(10, 2), nullable=False)
    shipping_cost = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    amount_reconciled = Column(Boolean, nullable=False, default=True)
    currency = Column(String(10), nullable=False, default="usd")

    # Status
    payment_status = Column(String(20), nullable=False, default="succeeded")
    order_status = Column(String(20), nullable=False, default="ordered", index=True)
    is_test_mode = Column(Boolean, nullable=False, default=False, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    status_updated_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # Admin list: testMode + orderStatus filters, newest first
        Index("ix_orders_test_status_created", "is_test_mode", "order_status", "created_at"),
    )


class AdminUser(Base):
    """Admin panel credentials. Email is stored lower-cased and trimmed."""
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), unique=True, nullable=False, index=True)
    password_hash = Column(String(100), nullable=False)
    name = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
