from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKeyConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

Base = declarative_base()
metadata = Base.metadata

ROLES = ("admin", "staff", "student")
MENU_CATEGORIES = ("food", "drink")
ORDER_STATUSES = ("unconfirmed", "cooking", "delivering", "arrived")


class Account(Base):
    __tablename__ = "account"
    __table_args__ = (
        Index("account_email", "email", unique=True),
        {"comment": "Login identity shared by admins, staff and students."},
    )

    id = mapped_column(Integer, primary_key=True)
    username = mapped_column(String(100), nullable=False)
    email = mapped_column(String(255), nullable=False)
    password_hash = mapped_column(String(100), nullable=False)
    role = mapped_column(Enum(*ROLES, name="account_role"), nullable=False)
    is_active = mapped_column(Boolean, nullable=False, default=True)
    created_at = mapped_column(DateTime, nullable=False, default=datetime.now)
    deactivated_at = mapped_column(DateTime)

    student_profile: Mapped[Optional["StudentProfile"]] = relationship(
        "StudentProfile", uselist=False, back_populates="account"
    )
    staff_profile: Mapped[Optional["StaffProfile"]] = relationship(
        "StaffProfile", uselist=False, back_populates="account"
    )

    def deactivate(self):
        """Soft delete. Accounts are never removed so order history stays valid."""
        self.is_active = False
        self.deactivated_at = datetime.now()


class Stall(Base):
    __tablename__ = "stall"

    id = mapped_column(Integer, primary_key=True)
    name = mapped_column(String(100), nullable=False)
    created_at = mapped_column(DateTime, nullable=False, default=datetime.now)

    staff: Mapped[List["StaffProfile"]] = relationship(
        "StaffProfile", uselist=True, back_populates="stall"
    )
    menu_items: Mapped[List["MenuItem"]] = relationship(
        "MenuItem", uselist=True, back_populates="stall"
    )
    orders: Mapped[List["Order"]] = relationship(
        "Order", uselist=True, back_populates="stall"
    )


class StudentProfile(Base):
    __tablename__ = "student_profile"
    __table_args__ = (
        ForeignKeyConstraint(
            ["account_id"], ["account.id"], name="fk_student_account"
        ),
        Index("student_number", "student_number", unique=True),
        Index("student_account_unique", "account_id", unique=True),
    )

    id = mapped_column(Integer, primary_key=True)
    student_number = mapped_column(String(50), nullable=False)
    name = mapped_column(String(100), nullable=False)
    address = mapped_column(Text)
    phone = mapped_column(String(20))
    photo_url = mapped_column(String(255))
    account_id = mapped_column(Integer, nullable=False)

    account: Mapped["Account"] = relationship(
        "Account", back_populates="student_profile"
    )
    orders: Mapped[List["Order"]] = relationship(
        "Order", uselist=True, back_populates="student"
    )


class StaffProfile(Base):
    __tablename__ = "staff_profile"
    __table_args__ = (
        ForeignKeyConstraint(["account_id"], ["account.id"], name="fk_staff_account"),
        ForeignKeyConstraint(["stall_id"], ["stall.id"], name="fk_staff_stall"),
        Index("staff_account_unique", "account_id", unique=True),
        Index("fk_staff_stall", "stall_id"),
    )

    id = mapped_column(Integer, primary_key=True)
    name = mapped_column(String(100), nullable=False)
    address = mapped_column(Text)
    phone = mapped_column(String(20))
    photo_url = mapped_column(String(255))
    account_id = mapped_column(Integer, nullable=False)
    # Cleared when the stall of a deactivated staff member is deleted
    stall_id = mapped_column(Integer)

    account: Mapped["Account"] = relationship("Account", back_populates="staff_profile")
    stall: Mapped[Optional["Stall"]] = relationship("Stall", back_populates="staff")


menu_item_discount = Table(
    "menu_item_discount",
    metadata,
    Column("menu_item_id", Integer, primary_key=True),
    Column("discount_id", Integer, primary_key=True),
    ForeignKeyConstraint(["menu_item_id"], ["menu_item.id"], name="fk_mid_menu_item"),
    ForeignKeyConstraint(["discount_id"], ["discount.id"], name="fk_mid_discount"),
    Index("fk_mid_discount", "discount_id"),
)


class MenuItem(Base):
    __tablename__ = "menu_item"
    __table_args__ = (
        ForeignKeyConstraint(["stall_id"], ["stall.id"], name="fk_menu_stall"),
        Index("fk_menu_stall", "stall_id"),
    )

    id = mapped_column(Integer, primary_key=True)
    name = mapped_column(String(100), nullable=False)
    price = mapped_column(Numeric(12, 2), nullable=False)
    category = mapped_column(Enum(*MENU_CATEGORIES, name="menu_category"), nullable=False)
    description = mapped_column(Text)
    photo_url = mapped_column(String(255))
    is_available = mapped_column(Boolean, nullable=False, default=True)
    stall_id = mapped_column(Integer, nullable=False)

    stall: Mapped["Stall"] = relationship("Stall", back_populates="menu_items")
    discounts: Mapped[List["Discount"]] = relationship(
        "Discount", secondary=menu_item_discount, back_populates="menu_items"
    )

    def retire(self):
        """Soft delete: the item leaves the catalog but old order lines keep pointing at it."""
        self.is_available = False


class Discount(Base):
    __tablename__ = "discount"

    id = mapped_column(Integer, primary_key=True)
    name = mapped_column(String(100), nullable=False)
    percentage = mapped_column(Numeric(5, 2), nullable=False)
    starts_at = mapped_column(DateTime, nullable=False)
    ends_at = mapped_column(DateTime, nullable=False)

    menu_items: Mapped[List["MenuItem"]] = relationship(
        "MenuItem", secondary=menu_item_discount, back_populates="discounts"
    )

    def is_active_at(self, moment):
        return self.starts_at <= moment <= self.ends_at


class Order(Base):
    __tablename__ = "customer_order"
    __table_args__ = (
        ForeignKeyConstraint(["student_id"], ["student_profile.id"], name="fk_ord_student"),
        ForeignKeyConstraint(["stall_id"], ["stall.id"], name="fk_ord_stall"),
        Index("ord_student_created", "student_id", "created_at"),
        Index("ord_stall_created", "stall_id", "created_at"),
    )

    id = mapped_column(Integer, primary_key=True)
    student_id = mapped_column(Integer, nullable=False)
    stall_id = mapped_column(Integer, nullable=False)
    created_at = mapped_column(DateTime, nullable=False, default=datetime.now)
    status = mapped_column(
        Enum(*ORDER_STATUSES, name="order_status"),
        nullable=False,
        default="unconfirmed",
    )

    student: Mapped["StudentProfile"] = relationship(
        "StudentProfile", back_populates="orders"
    )
    stall: Mapped["Stall"] = relationship("Stall", back_populates="orders")
    lines: Mapped[List["OrderLine"]] = relationship(
        "OrderLine", uselist=True, back_populates="order", order_by="OrderLine.id"
    )

    @property
    def total(self):
        # never stored, always derived from the frozen line prices
        return sum((line.subtotal for line in self.lines), 0)


class OrderLine(Base):
    __tablename__ = "order_line"
    __table_args__ = (
        ForeignKeyConstraint(["order_id"], ["customer_order.id"], name="fk_line_order"),
        ForeignKeyConstraint(["menu_item_id"], ["menu_item.id"], name="fk_line_menu_item"),
        Index("fk_line_order", "order_id"),
        Index("fk_line_menu_item", "menu_item_id"),
    )

    id = mapped_column(Integer, primary_key=True)
    order_id = mapped_column(Integer, nullable=False)
    menu_item_id = mapped_column(Integer, nullable=False)
    quantity = mapped_column(Integer, nullable=False)
    unit_price = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="lines")
    menu_item: Mapped["MenuItem"] = relationship("MenuItem")

    @property
    def subtotal(self):
        return self.unit_price * self.quantity
