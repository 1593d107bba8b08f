from __future__ import annotations

from typing import Any


def _fn(name: str, inputs: list[tuple[str, str]], outputs: list[tuple[str, str]]) -> dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


def _event(name: str, inputs: list[tuple[str, str, bool]]) -> dict[str, Any]:
    return {
        "name": name,
        "type": "event",
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": idx} for n, t, idx in inputs],
    }


# -------------------------------------------------------------------------
# Token factory
# -------------------------------------------------------------------------

TOKEN_CREATED_EVENT = _event(
    "TokenCreated",
    [
        ("tokenAddress", "address", True),
        ("creator", "address", True),
        ("name", "string", False),
        ("symbol", "string", False),
        ("totalSupply", "uint256", False),
        ("reserveRatio", "uint32", False),
        ("metadataURI", "string", False),
    ],
)

TOKEN_FACTORY_ABI: list[dict[str, Any]] = [
    TOKEN_CREATED_EVENT,
    _fn("getAllTokens", [], [("", "address[]")]),
    _fn(
        "getTokenInfo",
        [("tokenAddress", "address")],
        [
            ("creator", "address"),
            ("totalSupply", "uint256"),
            ("reserveRatio", "uint32"),
            ("metadataURI", "string"),
        ],
    ),
]

# -------------------------------------------------------------------------
# Marketplace (bonding curve)
# -------------------------------------------------------------------------

TOKENS_BOUGHT_EVENT = _event(
    "TokensBought",
    [
        ("tokenAddress", "address", True),
        ("buyer", "address", True),
        ("ethAmount", "uint256", False),
        ("tokenAmount", "uint256", False),
        ("newPrice", "uint256", False),
    ],
)

TOKENS_SOLD_EVENT = _event(
    "TokensSold",
    [
        ("tokenAddress", "address", True),
        ("seller", "address", True),
        ("tokenAmount", "uint256", False),
        ("ethAmount", "uint256", False),
        ("newPrice", "uint256", False),
    ],
)

TOKEN_LISTED_EVENT = _event(
    "TokenListed",
    [
        ("tokenAddress", "address", True),
        ("creator", "address", True),
        ("metadataURI", "string", False),
        ("totalSupply", "uint256", False),
        ("reserveRatio", "uint256", False),
    ],
)

TRADING_ENABLED_EVENT = _event(
    "TradingEnabled",
    [
        ("tokenAddress", "address", True),
        ("timestamp", "uint256", False),
    ],
)

MARKETPLACE_ABI: list[dict[str, Any]] = [
    TOKENS_BOUGHT_EVENT,
    TOKENS_SOLD_EVENT,
    TOKEN_LISTED_EVENT,
    TRADING_ENABLED_EVENT,
    _fn(
        "getTokenInfo",
        [("tokenAddress", "address")],
        [
            ("currentSupply", "uint256"),
            ("reserveBalance", "uint256"),
            ("reserveRatio", "uint32"),
            ("tradingEnabled", "bool"),
        ],
    ),
    _fn("getCurrentPrice", [("tokenAddress", "address")], [("", "uint256")]),
    _fn(
        "calculatePurchaseReturn",
        [("tokenAddress", "address"), ("ethAmount", "uint256")],
        [("", "uint256")],
    ),
    _fn(
        "calculateSaleReturn",
        [("tokenAddress", "address"), ("tokenAmount", "uint256")],
        [("", "uint256")],
    ),
]

# -------------------------------------------------------------------------
# ERC-20
# -------------------------------------------------------------------------

TRANSFER_EVENT = _event(
    "Transfer",
    [
        ("from", "address", True),
        ("to", "address", True),
        ("value", "uint256", False),
    ],
)

ERC20_ABI: list[dict[str, Any]] = [
    TRANSFER_EVENT,
    _fn("name", [], [("", "string")]),
    _fn("symbol", [], [("", "string")]),
    _fn("decimals", [], [("", "uint8")]),
    _fn("totalSupply", [], [("", "uint256")]),
    _fn("balanceOf", [("account", "address")], [("", "uint256")]),
]
