"""
Input validation for conversation fields.

Every validator either returns the normalized value or raises
ValidationError with a message suitable for re-prompting the user.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, DecimalException, InvalidOperation
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse

from web3 import Web3

from chainflow.core.errors import ValidationError, InsufficientFunds

SKIP_SENTINEL = "skip"

_BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")
_SYMBOL_RE = re.compile(r"^[A-Za-z0-9]{2,10}$")
_HANDLE_RE = re.compile(r"^@?[A-Za-z0-9_]{3,32}$")
_DECIMAL_COMMA_RE = re.compile(r"^\d+,\d{1,2}$")

# Accepted range of Decimal.adjusted() for amounts
MAX_AMOUNT_EXPONENT = 30

# Accepted date formats, tried in order after ISO 8601
_DATE_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
)


def is_valid_evm_address(address: str) -> bool:
    try:
        return Web3.is_address(address)
    except Exception:
        return False


def is_valid_solana_address(address: str) -> bool:
    if not address or not 32 <= len(address) <= 44:
        return False
    return all(ch in _BASE58_ALPHABET for ch in address)


ADDRESS_PREDICATES = {
    'evm': is_valid_evm_address,
    'solana': is_valid_solana_address,
}


def get_address_predicate(address_format: str) -> Callable[[str], bool]:
    """
    Get the address-format predicate for a chain family.

    Args:
        address_format: 'evm' or 'solana'

    Raises:
        ValueError: Unknown address format
    """
    try:
        return ADDRESS_PREDICATES[address_format]
    except KeyError:
        raise ValueError(f"Unknown address format: {address_format}")


def validate_address(raw: str, predicate: Callable[[str], bool]) -> str:
    address = (raw or "").strip()
    if not address or not predicate(address):
        raise ValidationError(
            "Invalid wallet address. Please check the address and send it again."
        )
    return address


def looks_like_identity(raw: str) -> bool:
    """True for ``@handle`` or a numeric user id."""
    text = (raw or "").strip()
    return text.isdigit() or bool(_HANDLE_RE.match(text))


def parse_amount(raw: str) -> Decimal:
    """
    Parse a positive, finite amount.

    A single comma followed by one or two digits is read as the decimal
    point ("1,5" is 1.5). Any other comma is rejected as ambiguous.

    Raises:
        ValidationError: If the text is not a positive finite number of
            sensible magnitude
    """
    text = (raw or "").strip()
    if "," in text:
        if not _DECIMAL_COMMA_RE.match(text):
            raise ValidationError("Invalid amount. Use a dot for decimals and no separators, e.g. 1500.5")
        text = text.replace(",", ".")

    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError("Invalid amount. Please send a positive number, e.g. 1.5")

    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be a positive number.")
    if amount.adjusted() > MAX_AMOUNT_EXPONENT:
        raise ValidationError("Amount is too large.")
    if amount.adjusted() < -MAX_AMOUNT_EXPONENT:
        raise ValidationError("Amount has too many decimal places.")
    return amount


def validate_amount_against_balance(amount: Decimal, balance: Decimal, symbol: str) -> Decimal:
    """
    Reject amounts above the known balance.

    Raises:
        InsufficientFunds: If amount exceeds balance
    """
    if amount > balance:
        raise InsufficientFunds(
            f"Insufficient balance. You have {balance} {symbol}, "
            f"but tried to send {amount} {symbol}.",
            shortfall=amount - balance,
        )
    return amount


def parse_slippage_bps(raw: str, low: int, high: int) -> int:
    """
    Parse slippage in basis points (``50``) or percent (``0.5%``).

    Raises:
        ValidationError: If not a number or outside [low, high]
    """
    text = (raw or "").strip()
    try:
        if text.endswith("%"):
            bps = Decimal(text[:-1].strip()) * 100
        else:
            bps = Decimal(text)
    except DecimalException:
        raise ValidationError("Invalid slippage. Send basis points (50) or a percentage (0.5%).")

    if not bps.is_finite() or not low <= bps <= high:
        raise ValidationError(f"Slippage must be between {low} and {high} bps.")
    if bps != bps.to_integral_value():
        raise ValidationError("Slippage must be a whole number of basis points.")
    return int(bps)


def validate_text(raw: str, field_name: str, min_length: int, max_length: int = 500) -> str:
    text = (raw or "").strip()
    if len(text) < min_length:
        raise ValidationError(f"{field_name} must be at least {min_length} characters.")
    if len(text) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters.")
    return text


def parse_future_date(raw: str, now: Optional[datetime] = None) -> datetime:
    """
    Parse a date/time that lies strictly in the future.

    Naive values are interpreted as UTC.

    Raises:
        ValidationError: If unparseable or not in the future
    """
    text = (raw or "").strip()
    parsed = None
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise ValidationError("Invalid date. Use YYYY-MM-DD or YYYY-MM-DD HH:MM.")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    if parsed <= now:
        raise ValidationError("The date must be in the future.")
    return parsed


def parse_optional_url(raw: str) -> Optional[str]:
    """
    Parse an http(s) URL or the ``skip`` sentinel (returns None).

    Raises:
        ValidationError: If neither a well-formed URL nor ``skip``
    """
    text = (raw or "").strip()
    if text.lower() == SKIP_SENTINEL:
        return None

    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in text:
        raise ValidationError("Invalid URL. Send an http(s) link or 'skip'.")
    return text


def parse_symbol(raw: str) -> str:
    text = (raw or "").strip()
    if not _SYMBOL_RE.match(text):
        raise ValidationError("Symbol must be 2-10 letters or digits.")
    return text.upper()


def parse_choice(raw: str, choices: Iterable[str], field_name: str) -> str:
    """
    Match input case-insensitively against a closed set.

    Returns:
        The canonical spelling from ``choices``
    """
    text = (raw or "").strip().lower()
    options = list(choices)
    for option in options:
        if option.lower() == text:
            return option
    raise ValidationError(f"{field_name} must be one of: {', '.join(options)}.")


def parse_positive_int(raw: str, field_name: str, maximum: int) -> int:
    text = (raw or "").strip()
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(f"{field_name} must be a whole number.")
    if len(text.lstrip("0")) > len(str(maximum)):
        raise ValidationError(f"{field_name} must be between 1 and {maximum}.")
    value = int(text)
    if not 1 <= value <= maximum:
        raise ValidationError(f"{field_name} must be between 1 and {maximum}.")
    return value
