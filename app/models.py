"""
SQLAlchemy Database Models

Tables:
- menus: items shown on the menu page
- contacts: messages sent from the contact form
- reservations: table bookings
- orders: the current business day's food orders
- order_sequence: single-row counter behind order numbers
"""

import uuid

from sqlalchemy import Boolean, Column, Integer, String, Float, DateTime, Text, UniqueConstraint, false
from sqlalchemy.sql import func
from app.database import Base


# The order_sequence table only ever holds this row
SEQUENCE_ROW_ID = 1

ORDER_NUMBER_CONSTRAINT = "uq_orders_order_number"


def _new_id() -> str:
    return str(uuid.uuid4())


class MenuItem(Base):
    """A dish on the menu."""
    __tablename__ = "menus"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    image = Column(String(500), nullable=False)

    def __repr__(self):
        return f"<MenuItem {self.name} - {self.price}>"


class Contact(Base):
    """Message left through the contact form."""
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    subject = Column(String(200), nullable=True)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Contact {self.id} - {self.email}>"


class Reservation(Base):
    """Table reservation."""
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=_new_id)
    firstname = Column(String(100), nullable=False)
    name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    date_time = Column(DateTime(timezone=True), nullable=False, index=True)
    guests = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Reservation {self.id} - {self.firstname} x{self.guests}>"


class Order(Base):
    """
    Food order placed at a table.

    Orders live for one business day: the daily reset deletes them all
    and restarts the order-number sequence.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("order_number", name=ORDER_NUMBER_CONSTRAINT),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    order_number = Column(String(12), nullable=False, index=True)
    meal_name = Column(String(100), nullable=False)
    side_item = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    table_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<Order #{self.order_number} - {self.meal_name} x{self.quantity} - table {self.table_number}>"


# Numeric order for numbers that may have widened past the padded width
ORDER_NUMBER_SORT = (func.length(Order.order_number), Order.order_number)


class OrderSequence(Base):
    """
    Last issued order number.

    Holds a single row (id = SEQUENCE_ROW_ID). Updated with
    compare-and-set so concurrent writers never issue the same number.
    ``reset_pending`` is set when a daily reset could not zero the counter;
    the next issuance in any process resets it first.
    """
    __tablename__ = "order_sequence"

    id = Column(Integer, primary_key=True, default=SEQUENCE_ROW_ID)
    last_issued = Column(Integer, nullable=False, default=0)
    reset_pending = Column(Boolean, nullable=False, default=False, server_default=false())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<OrderSequence last_issued={self.last_issued}>"
