from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenCreated:
    """Factory: a new bonding-curve token was deployed."""

    block_number: int
    transaction_hash: str
    log_index: int
    token_address: str
    creator: str
    name: str
    symbol: str
    total_supply: int
    reserve_ratio: int
    metadata_uri: str


@dataclass(frozen=True)
class TokenListed:
    """Marketplace: a token was listed and trading became possible."""

    block_number: int
    transaction_hash: str
    log_index: int
    token_address: str
    creator: str
    metadata_uri: str
    total_supply: int
    reserve_ratio: int


@dataclass(frozen=True)
class TokensBought:
    block_number: int
    transaction_hash: str
    log_index: int
    token_address: str
    buyer: str
    eth_amount: int
    token_amount: int
    new_price: int


@dataclass(frozen=True)
class TokensSold:
    block_number: int
    transaction_hash: str
    log_index: int
    token_address: str
    seller: str
    token_amount: int
    eth_amount: int
    new_price: int


@dataclass(frozen=True)
class Transfer:
    """ERC-20 Transfer, only used to discover holder addresses."""

    block_number: int
    transaction_hash: str
    log_index: int
    token_address: str
    sender: str
    recipient: str
    value: int


LaunchpadEvent = TokenCreated | TokenListed | TokensBought | TokensSold


def trade_price(eth_amount: int, token_amount: int) -> float:
    """ETH paid per token for one trade; 0 when no tokens moved."""
    if token_amount <= 0:
        return 0.0
    return eth_amount / token_amount
