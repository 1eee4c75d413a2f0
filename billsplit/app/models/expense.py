"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `deleted_at` is NULL for active expenses, non-null for soft-deleted ones.
    Soft-deleted rows never contribute to balances.
  - `amount` uses Numeric(15, 3) — never Float. Three fractional digits cover
    every supported currency (KWD, BHD, ...); the schema rejects amounts with
    more digits than the expense's currency allows.
  - `currency` is stored per expense. Balances are never netted across
    currencies.
  - `participants` is not a column: it is derived from the splits, in the
    order they were stored.
  - SplitType is stored as a plain string (native_enum=False) so the same
    model runs on PostgreSQL and SQLite.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billsplit.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Defined here so they can be imported by schemas and services without
# pulling in the full model. Do not duplicate these as plain string constants
# anywhere else in the codebase.

class SplitType(str, enum.Enum):
    EQUAL      = "equal"
    EXACT      = "exact"
    PERCENTAGE = "percentage"


DEFAULT_CATEGORY = "general"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'exact'), not names ('EXACT')."""
    return [member.value for member in enum_cls]


# ── Model ──────────────────────────────────────────────────────────────────

class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
        # The balance service always reads through get_active_expenses(),
        # which filters deleted_at IS NULL.
        Index(
            "idx_expenses_active",
            "group_id",
            postgresql_where="deleted_at IS NULL",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE RESTRICT: cannot delete a group that has expenses.
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    paid_by: Mapped[str] = mapped_column(String(128), nullable=False)

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 3), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=DEFAULT_CATEGORY,
        server_default=DEFAULT_CATEGORY,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SplitType.EQUAL,
    )

    # When the expense happened, as reported by the client.
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set on every successful PATCH.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # NULL = active; NOT NULL = soft-deleted. Never hard-delete via the API.
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    deleted_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    # ON DELETE CASCADE: splits are owned by their expense.
    # Ordered by id so participants come back in input order.
    splits: Mapped[list["Split"]] = relationship(  # noqa: F821
        "Split",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Split.id",
    )

    # ── Convenience properties ─────────────────────────────────────────────

    @property
    def is_deleted(self) -> bool:
        """True if this expense has been soft-deleted."""
        return self.deleted_at is not None

    @property
    def participants(self) -> list[str]:
        return [split.user_id for split in self.splits]

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount} {self.currency} "
            f"deleted={self.is_deleted}>"
        )
