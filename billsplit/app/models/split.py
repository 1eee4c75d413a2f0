"""
models/split.py — Split table definition.

One row per participant of an expense: the amount that participant owes
toward it, and for percentage splits the percentage it was derived from.

  - expense_id is ON DELETE CASCADE — splits are owned by their expense.
  - UNIQUE(expense_id, user_id) — a participant appears once per expense
    (also enforced as DUPLICATE_SPLIT_USERS by the split validator).
  - amount may be zero: an equal split of 0.01 across three people leaves
    two of them owing nothing.

sum(splits.amount) == expense.amount is enforced by the split validator
before the write, and re-checked by the balance aggregator on read.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billsplit.app.extensions import db


class Split(db.Model):
    __tablename__ = "splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        CheckConstraint("amount >= 0", name="ck_splits_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 3), nullable=False)

    # Only set for percentage splits.
    percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 4),
        nullable=True,
    )

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="splits",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Split id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id!r} "
            f"amount={self.amount}>"
        )
