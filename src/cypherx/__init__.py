"""CypherX self-custodial wallet and swap engine."""

__version__ = "0.1.0"
