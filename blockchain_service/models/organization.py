"""
Organization model - read-only view of the marketplace organizations table.

Rows are owned by the CRUD side of the platform; this service only resolves
organization contract addresses from them.
"""

from typing import Optional

from sqlalchemy import String, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Organization(BaseModel, TimestampMixin):
    """Organization with its deployed org contract."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Organization id"
    )

    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Display name"
    )

    site_address: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Marketplace site the organization operates"
    )

    contract_address: Mapped[Optional[str]] = mapped_column(
        String(42),
        nullable=True,
        comment="Deployed org contract address"
    )

    __table_args__ = (
        Index("idx_organization_contract_address", "contract_address"),
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, site={self.site_address})>"
