"""
Decimal normalization between a token's native precision and the canonical
18-decimal representation used for all ledger arithmetic.
"""
from ...protocol.config.params import TOKEN_MAX_DECIMALS
from ...protocol.types.common import ConfigurationError, ValidationError


def validate_decimals(decimals: int) -> int:
    if not isinstance(decimals, int) or decimals < 0 or decimals > TOKEN_MAX_DECIMALS:
        raise ConfigurationError("token decimals", {"decimals": decimals})
    return decimals


def _check_amount(amount: int):
    if amount < 0:
        raise ValidationError(f"Negative amount: {amount}")


def scale_decimals_to_wei(amount: int, decimals: int) -> int:
    """Native units -> canonical units."""
    _check_amount(amount)
    validate_decimals(decimals)
    return amount * 10 ** (TOKEN_MAX_DECIMALS - decimals)


def scale_wei_to_decimals(amount_wei: int, decimals: int) -> int:
    """Canonical units -> native units, dropping any sub-unit remainder."""
    _check_amount(amount_wei)
    validate_decimals(decimals)
    return amount_wei // 10 ** (TOKEN_MAX_DECIMALS - decimals)


def truncate_wei(amount_wei: int, decimals: int) -> int:
    """Floor a canonical amount to the nearest whole native unit (still canonical)."""
    if decimals == TOKEN_MAX_DECIMALS:
        _check_amount(amount_wei)
        return amount_wei
    return scale_decimals_to_wei(scale_wei_to_decimals(amount_wei, decimals), decimals)


# Names used across the ledger
to_canonical = scale_decimals_to_wei
from_canonical = truncate_wei
