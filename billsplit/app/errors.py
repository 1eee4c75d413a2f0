"""
errors.py — AppError base class and error code registry.

Every error returned by the BillSplit API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class BalanceIntegrityError(AppError):
    """
    Raised by the balance aggregator when stored data cannot be reconciled
    (split sums off by more than the tolerance, a record without a currency,
    a currency whose balances do not sum to zero).

    Data reaching the aggregator has already passed the split validator, so
    this always means corruption upstream. Clients only ever see the generic
    message; `detail` carries the specifics for the server log.
    """

    def __init__(self, detail: str, group_id=None) -> None:
        super().__init__(
            ErrorCode.BALANCE_CALCULATION_FAILED,
            "Unable to compute balances.",
            500,
        )
        self.detail   = detail
        self.group_id = group_id

    def __repr__(self) -> str:
        return f"BalanceIntegrityError(group_id={self.group_id!r}, detail={self.detail!r})"


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the section comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CURRENCY           = "INVALID_CURRENCY"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    NO_UPDATE_FIELDS           = "NO_UPDATE_FIELDS"

    # ── Split Validation Errors (400) ──────────────────────────────────────
    INVALID_PARTICIPANTS       = "INVALID_PARTICIPANTS"
    INVALID_SPLITS             = "INVALID_SPLITS"
    INVALID_SPLIT_TOTAL        = "INVALID_SPLIT_TOTAL"
    MISSING_SPLIT_AMOUNT       = "MISSING_SPLIT_AMOUNT"
    MISSING_SPLIT_PERCENTAGE   = "MISSING_SPLIT_PERCENTAGE"
    INVALID_PERCENTAGE_TOTAL   = "INVALID_PERCENTAGE_TOTAL"
    DUPLICATE_SPLIT_USERS      = "DUPLICATE_SPLIT_USERS"
    INVALID_SPLIT_USER         = "INVALID_SPLIT_USER"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER             = "ALREADY_MEMBER"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_PARTICIPANT          = "PAYER_NOT_PARTICIPANT"
    USER_NOT_IN_GROUP              = "USER_NOT_IN_GROUP"
    SELF_SETTLEMENT                = "SELF_SETTLEMENT"
    EXPENSE_DELETED                = "EXPENSE_DELETED"
    SETTLEMENT_DELETED             = "SETTLEMENT_DELETED"
    MEMBER_HAS_OUTSTANDING_BALANCE = "MEMBER_HAS_OUTSTANDING_BALANCE"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
    BALANCE_CALCULATION_FAILED = "BALANCE_CALCULATION_FAILED"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Settlement amount exceeds what the payer currently owes the payee in
    # that currency. The settlement is still recorded.
    OVERPAYMENT = "OVERPAYMENT"
