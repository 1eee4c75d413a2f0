"""
models/settlement.py — Settlement table definition.

A recorded payment from `payer_id` to `payee_id` inside a group, in one
currency. Settlements move balances the opposite way to expenses: the payer's
balance goes up, the payee's goes down.

  - `amount` uses Numeric(15, 3) — never Float.
  - payer_id <> payee_id is enforced here AND in settlement_service.py
    (SELF_SETTLEMENT, 422). The DB constraint is the last line of defense.
  - Soft-deleted like expenses: `deleted_at` set, row kept.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billsplit.app.extensions import db


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "payer_id <> payee_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE RESTRICT: cannot delete a group that has settlements.
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    payer_id: Mapped[str] = mapped_column(String(128), nullable=False)

    payee_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # Overpayment warns but does not block.
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 3), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    note: Mapped[str | None] = mapped_column(String(500), nullable=True)

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

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    deleted_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="settlements",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"group_id={self.group_id} "
            f"from={self.payer_id!r} "
            f"to={self.payee_id!r} "
            f"amount={self.amount} {self.currency}>"
        )
