import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ..common.db import Base


class GroupStatus(str, enum.Enum):
    """Flat label set. Any status may follow any other."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    DELIVERED = "delivered"


# Values a supplier may set through the status endpoint
SETTABLE_GROUP_STATUSES = frozenset({GroupStatus.ACCEPTED, GroupStatus.DECLINED, GroupStatus.DELIVERED})


class ProductGroup(Base):
    __tablename__ = "product_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product: Mapped[str] = mapped_column(String(255), nullable=False)
    # target quantity of the group-buy
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_quantity: Mapped[int] = mapped_column(Integer, nullable=True, default=0)
    price: Mapped[str] = mapped_column(String(64), nullable=True)
    actual_rate: Mapped[str] = mapped_column(String(64), nullable=True)
    final_rate: Mapped[str] = mapped_column(String(64), nullable=True)
    discount_percentage: Mapped[str] = mapped_column(String(64), nullable=True)
    minimum_quantity: Mapped[str] = mapped_column(String(64), nullable=True)
    discount_per_unit: Mapped[str] = mapped_column(String(64), nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    delivery_address: Mapped[str] = mapped_column(String(512), nullable=True)
    delivery_city: Mapped[str] = mapped_column(String(128), nullable=True)
    delivery_state: Mapped[str] = mapped_column(String(128), nullable=True)
    delivery_pincode: Mapped[str] = mapped_column(String(16), nullable=True)
    deadline: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=GroupStatus.PENDING.value)
    created_by: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    latitude: Mapped[str] = mapped_column(String(32), nullable=True)
    longitude: Mapped[str] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
