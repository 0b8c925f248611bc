"""Utility modules for CypherX."""

from cypherx.utils.locks import AddressLock, SingleFlight, get_address_lock

__all__ = ["AddressLock", "SingleFlight", "get_address_lock"]
