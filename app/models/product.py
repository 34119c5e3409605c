"""
Product catalogue table

Only the columns search needs for hydration, filters and sweeps. The
storefront CRUD layer owns the rest of the product lifecycle.
"""

import enum

from sqlalchemy import Enum as SQLEnum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, StringIDMixin, TimestampMixin


class ComponentType(str, enum.Enum):
    """Product component category used for filtering and embedding text"""

    CPU = "cpu"
    MAINBOARD = "mainboard"
    RAM = "ram"
    HDD = "hdd"
    SSD = "ssd"
    GPU = "gpu"
    VGA = "vga"
    POWER = "power"
    COOLER = "cooler"
    CASE = "case"
    MONITOR = "monitor"
    KEYBOARD = "keyboard"
    MOUSE = "mouse"
    HEADSET = "headset"
    PC = "pc"


class Product(Base, StringIDMixin, TimestampMixin):
    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    component_type: Mapped[ComponentType | None] = mapped_column(
        SQLEnum(
            ComponentType,
            name="component_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=True,
        index=True,
    )
    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image_urls: Mapped[list[str]] = mapped_column(
        "images",
        JSONType,
        nullable=False,
        default=list,
        comment="Ordered image references (http(s) or data URLs)",
    )

    # Prebuilt PC bundle parts (component_type == pc)
    cpu: Mapped[str | None] = mapped_column(String(255), nullable=True)
    main: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ram: Mapped[str | None] = mapped_column(String(255), nullable=True)
    storage: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gpu: Mapped[str | None] = mapped_column(String(255), nullable=True)
    power: Mapped[str | None] = mapped_column(String(255), nullable=True)
    case_computer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    coolers: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name!r})>"
