"""Local catalog models: products and their variants, mirrored from Printful."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


class Product(SQLModel, table=True):
    """One row per remote sync product.

    `remote_id` is the join key across runs; the local `id` is regenerated
    independently of the remote system and must never be used for diffing.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    remote_id: str = Field(unique=True, index=True)
    external_id: Optional[str] = Field(default=None, index=True)
    name: str = Field(index=True)
    thumbnail_url: Optional[str] = None

    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    remote_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    is_ignored: bool = False
    is_active: bool = Field(default=True, index=True)  # storefront visibility, owned locally

    synced_at: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    variants: List["Variant"] = Relationship(back_populates="product")


class Variant(SQLModel, table=True):
    """One purchasable size/color combination of a Product."""

    __table_args__ = (
        UniqueConstraint("product_id", "remote_id", name="uq_variant_product_remote"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    remote_id: str  # unique within the product
    external_id: Optional[str] = None
    name: str

    retail_price: str  # decimal string exactly as Printful returns it
    currency: str
    size: Optional[str] = None
    color: Optional[str] = None

    is_enabled: bool = Field(default=True, index=True)
    in_stock: bool = True
    is_ignored: bool = False

    # [{"id", "type", "url", "preview_url"}, ...] in remote order
    files: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    options: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    synced_at: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    product: Optional[Product] = Relationship(back_populates="variants")
