"""
Input validators for wallet addresses.
"""

import re
from typing import Optional

ETH_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_eth_address(value: Optional[str]) -> bool:
    return bool(value) and ETH_ADDRESS_RE.match(value.strip()) is not None


def normalize_address(value: str) -> str:
    """Validate an Ethereum address and return it lowercased."""
    candidate = (value or "").strip()
    if not ETH_ADDRESS_RE.match(candidate):
        raise ValueError(f"Invalid Ethereum address: {value!r}")
    return candidate.lower()
