"""
Billing calculator and payment card redaction.

remaining_balance is derived: whatever a caller sends for it is discarded and
the value is recomputed from total_cost and insurance_covered_amount on every
write. Payments keep only the last four card digits; full card numbers and
CVVs never reach the database.
"""

import logging
import re
from decimal import Decimal
from typing import Any, Dict, Optional

from hms_backend.exceptions import ConstraintViolation
from hms_backend.services.constraints import to_decimal

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[\s-]")


def remaining_balance(total_cost: Any, insurance_covered_amount: Any) -> Optional[Decimal]:
    if total_cost is None or insurance_covered_amount is None:
        return None
    return to_decimal(total_cost) - to_decimal(insurance_covered_amount)


def strip_remaining_balance(uow, op: str, values: Dict[str, Any], old=None) -> None:
    if "remaining_balance" in values:
        logger.debug("Ignoring caller-supplied remaining_balance; it is derived")
        values.pop("remaining_balance")


def derive_remaining_balance(uow, op: str, row: Dict[str, Any], old=None) -> None:
    row["remaining_balance"] = remaining_balance(row.get("total_cost"), row.get("insurance_covered_amount"))


def last_four(card_number: Any) -> str:
    digits = _NON_DIGITS.sub("", str(card_number))
    if not digits.isdigit() or not 12 <= len(digits) <= 19:
        raise ConstraintViolation("card_number", "card_number must contain 12 to 19 digits", "Payment")
    return digits[-4:]


def redact_card(uow, op: str, values: Dict[str, Any], old=None) -> None:
    """Replace card_number with card_last_four and drop any CVV before the row is built."""
    values.pop("cvv", None)
    if "card_number" in values:
        values["card_last_four"] = last_four(values.pop("card_number"))


def default_payment_date(uow, op: str, row: Dict[str, Any], old=None) -> None:
    if op == "insert" and row.get("payment_date") is None:
        row["payment_date"] = uow.today


def default_issue_date(uow, op: str, row: Dict[str, Any], old=None) -> None:
    if op == "insert" and row.get("issue_date") is None:
        row["issue_date"] = uow.today


def register(registry) -> None:
    registry.register("BillingStatement", "prepare", strip_remaining_balance)
    registry.register("BillingStatement", "derive", derive_remaining_balance)
    registry.register("Payment", "prepare", redact_card)
    registry.register("Payment", "derive", default_payment_date)
    registry.register("Invoice", "derive", default_issue_date)
