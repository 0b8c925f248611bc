"""Address validation and ERC-20 calldata encoding."""

from typing import Optional

from eth_utils import is_address, to_checksum_address

from cypherx.errors import InvalidAddress

# Sentinel the aggregator uses for the chain's native asset
NATIVE_TOKEN_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

# ERC-20 function selectors
ERC20_TRANSFER_SELECTOR = "0xa9059cbb"  # transfer(address,uint256)
ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)
BALANCE_OF_SELECTOR = "0x70a08231"  # balanceOf(address)
DECIMALS_SELECTOR = "0x313ce567"  # decimals()

MAX_UINT256 = 2**256 - 1


def is_valid_address(value: Optional[str]) -> bool:
    """Check for a well-formed 20-byte hex address.

    Mixed-case input must carry a valid EIP-55 checksum.
    """
    if not isinstance(value, str):
        return False
    value = value.strip()
    if not value.startswith("0x") or len(value) != 42:
        return False
    return is_address(value)


def normalize_address(value: Optional[str], message: Optional[str] = None) -> str:
    """Return the checksummed form or raise InvalidAddress."""
    if not is_valid_address(value):
        raise InvalidAddress(message)
    return to_checksum_address(value.strip())


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def is_native(address: Optional[str]) -> bool:
    return same_address(address, NATIVE_TOKEN_ADDRESS)


def _pad_address(address: str) -> str:
    return address.lower().replace("0x", "").zfill(64)


def _pad_uint(value: int) -> str:
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"uint256 out of range: {value}")
    return hex(value)[2:].zfill(64)


def encode_transfer(to_address: str, amount: int) -> str:
    """Encode transfer(address to, uint256 amount)."""
    return f"{ERC20_TRANSFER_SELECTOR}{_pad_address(to_address)}{_pad_uint(amount)}"


def encode_approve(spender: str, amount: int = MAX_UINT256) -> str:
    """Encode approve(address spender, uint256 amount)."""
    return f"{ERC20_APPROVE_SELECTOR}{_pad_address(spender)}{_pad_uint(amount)}"


def encode_balance_of(owner: str) -> str:
    """Encode balanceOf(address owner)."""
    return f"{BALANCE_OF_SELECTOR}{_pad_address(owner)}"
