"""
Input Validation - Sanitization of values crossing the session boundary.

Covers everything the controller and clearnode accept from callers or
from the wire:
- Participant addresses
- Monetary amounts (cent precision, bounded)
- Session versions
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Tuple

from penny.crypto import is_valid_address

# =============================================================================
# Constants
# =============================================================================

MAX_AMOUNT = Decimal("1000000000.00")
MAX_VERSION = 2**63 - 1
MAX_AUCTION_ID_LENGTH = 128


# =============================================================================
# Validation Functions
# =============================================================================


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 0x-prefixed 20-byte hex address."""
    if address is None or address == "":
        return False, f"{name} is missing"
    if not isinstance(address, str):
        return False, f"{name} must be str, got {type(address).__name__}"
    if not is_valid_address(address):
        return False, f"{name} is not a valid address: {address!r}"
    return True, ""


def validate_participants(seller: Any, bidder: Any, operator: Any) -> Tuple[bool, str]:
    """
    Validate the three session participants.

    Each must be a valid address and no address may fill two roles.
    """
    for name, value in (("seller", seller), ("bidder", bidder), ("operator", operator)):
        valid, err = validate_address(value, name)
        if not valid:
            return False, err

    lowered = {seller.lower(), bidder.lower(), operator.lower()}
    if len(lowered) != 3:
        return False, "seller, bidder and operator must be distinct addresses"

    return True, ""


def validate_amount(
    amount: Any,
    name: str = "amount",
    max_val: Decimal = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate a monetary amount.

    Accepts Decimal, int or numeric str; rejects floats' binary noise by
    requiring at most two decimal places.

    Returns:
        (is_valid, error_message)
    """
    if isinstance(amount, bool) or not isinstance(amount, (Decimal, int, str)):
        return False, f"{name} must be Decimal, int or str, got {type(amount).__name__}"

    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        return False, f"{name} is not a number: {amount!r}"

    if not value.is_finite():
        return False, f"{name} must be finite"
    if value < 0:
        return False, f"{name} must be >= 0, got {value}"
    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"
    if value != value.quantize(Decimal("0.01")):
        return False, f"{name} has more than 2 decimal places: {value}"

    return True, ""


def validate_version(version: Any) -> Tuple[bool, str]:
    """Validate a session version number."""
    if isinstance(version, bool) or not isinstance(version, int):
        return False, f"version must be int, got {type(version).__name__}"
    if version < 0 or version > MAX_VERSION:
        return False, f"version out of range: {version}"
    return True, ""


def validate_auction_id(auction_id: Any) -> Tuple[bool, str]:
    """Validate an auction identifier."""
    if not isinstance(auction_id, str) or not auction_id:
        return False, "auction_id must be a non-empty str"
    if len(auction_id) > MAX_AUCTION_ID_LENGTH:
        return False, f"auction_id exceeds max length {MAX_AUCTION_ID_LENGTH}"
    return True, ""


def validate_weights(weights: Iterable[Any], quorum: Any) -> Tuple[bool, str]:
    """Validate signature weights against a quorum threshold."""
    weights = list(weights)
    if len(weights) != 3:
        return False, f"expected 3 weights, got {len(weights)}"
    for w in weights:
        if isinstance(w, bool) or not isinstance(w, int) or w < 0:
            return False, f"weights must be non-negative ints, got {w!r}"
    if isinstance(quorum, bool) or not isinstance(quorum, int) or quorum <= 0:
        return False, f"quorum must be a positive int, got {quorum!r}"
    if quorum > sum(weights):
        return False, f"quorum {quorum} exceeds total weight {sum(weights)}"
    return True, ""
