from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db import Base


class Role(str, Enum):
    ADMIN = 'admin'
    TEACHER = 'teacher'
    PARENT = 'parent'
    CLIENT = 'client'


class SessionStatus(str, Enum):
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class OrderStatus(IntEnum):
    CART = 0
    PLACED = 1
    PROCESSING = 2
    SHIPPED = 3
    DELIVERED = 4

    @classmethod
    def terminal(cls) -> 'OrderStatus':
        return max(cls)

    @property
    def label(self) -> str:
        return self.name.replace('_', ' ').title()


class LearningSession(Base):
    __tablename__ = 'learning_sessions'
    __table_args__ = (
        Index('ix_learning_sessions_teacher_start_end', 'teacher_id', 'start_time', 'end_time'),
        Index('ix_learning_sessions_teacher_status', 'teacher_id', 'status'),
        CheckConstraint('end_time > start_time', name='ck_learning_sessions_interval'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    teacher_id: Mapped[int] = mapped_column(Integer, index=True)
    student_id: Mapped[int] = mapped_column(Integer, index=True)
    subject_id: Mapped[int] = mapped_column(Integer, index=True)
    course_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.SCHEDULED.value, index=True)
    attended: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    performance_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location: Mapped[str] = mapped_column(String(255), default='Online')
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(180))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Order(Base):
    __tablename__ = 'orders'
    __table_args__ = (
        Index('ix_orders_owner_status', 'owner_id', 'status_id'),
        CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[int] = mapped_column(Integer, index=True)
    status_id: Mapped[int] = mapped_column(Integer, default=int(OrderStatus.CART), index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal('0.00'))
    payment_reference: Mapped[str | None] = mapped_column(String(80), nullable=True)
    placed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def status(self) -> OrderStatus:
        return OrderStatus(int(self.status_id))

    @property
    def is_cart(self) -> bool:
        return int(self.status_id) == OrderStatus.CART


class OrderItem(Base):
    __tablename__ = 'order_items'
    __table_args__ = (
        UniqueConstraint('order_id', 'product_id', name='uq_order_items_order_product'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id'), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'), index=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    line_total: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class OrderLog(Base):
    __tablename__ = 'order_logs'
    __table_args__ = (
        Index('ix_order_logs_order_created', 'order_id', 'created_at'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id'), index=True)
    status_id: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
