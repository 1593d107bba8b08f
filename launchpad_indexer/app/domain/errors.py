from __future__ import annotations


class LaunchpadIndexerError(Exception):
    """Base class for errors raised by the indexer core."""


class ConfigurationError(LaunchpadIndexerError):
    """Fatal startup problem (no RPC endpoint, no database settings, ...)."""


class ChainError(LaunchpadIndexerError):
    """Any failure talking to the chain."""


class ChainUnavailableError(ChainError):
    """Transient RPC failure that survived every retry and every endpoint."""


class NonRetryableChainError(ChainError):
    """
    Deterministic failure (bad argument, reverted call, failed gas estimation).

    Retrying or falling back to another endpoint would give the same answer.
    """
