from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from eth_utils import to_checksum_address

from launchpad_indexer.app.domain.events import (
    TokenCreated,
    TokenListed,
    TokensBought,
    TokensSold,
    Transfer,
)
from launchpad_indexer.app.domain.models import (
    FactoryTokenInfo,
    MarketInfo,
    TokenDetails,
    normalize_address,
)
from launchpad_indexer.app.domain.ports.out import ChainClient, ContractGateway
from launchpad_indexer.app.infrastructure.contracts.abis import (
    ERC20_ABI,
    MARKETPLACE_ABI,
    TOKEN_CREATED_EVENT,
    TOKEN_FACTORY_ABI,
    TOKEN_LISTED_EVENT,
    TOKENS_BOUGHT_EVENT,
    TOKENS_SOLD_EVENT,
    TRANSFER_EVENT,
)
from launchpad_indexer.app.infrastructure.contracts.event_decoder import AbiEventDecoder

logger = logging.getLogger(__name__)

E = TypeVar("E")


def _position(d: dict[str, Any]) -> dict[str, Any]:
    return {
        "block_number": d["block_number"],
        "transaction_hash": d["transaction_hash"],
        "log_index": d["log_index"],
    }


def _to_token_created(d: dict[str, Any]) -> TokenCreated:
    return TokenCreated(
        **_position(d),
        token_address=d["tokenAddress"],
        creator=d["creator"],
        name=d["name"],
        symbol=d["symbol"],
        total_supply=d["totalSupply"],
        reserve_ratio=d["reserveRatio"],
        metadata_uri=d["metadataURI"],
    )


def _to_token_listed(d: dict[str, Any]) -> TokenListed:
    return TokenListed(
        **_position(d),
        token_address=d["tokenAddress"],
        creator=d["creator"],
        metadata_uri=d["metadataURI"],
        total_supply=d["totalSupply"],
        reserve_ratio=d["reserveRatio"],
    )


def _to_tokens_bought(d: dict[str, Any]) -> TokensBought:
    return TokensBought(
        **_position(d),
        token_address=d["tokenAddress"],
        buyer=d["buyer"],
        eth_amount=d["ethAmount"],
        token_amount=d["tokenAmount"],
        new_price=d["newPrice"],
    )


def _to_tokens_sold(d: dict[str, Any]) -> TokensSold:
    return TokensSold(
        **_position(d),
        token_address=d["tokenAddress"],
        seller=d["seller"],
        token_amount=d["tokenAmount"],
        eth_amount=d["ethAmount"],
        new_price=d["newPrice"],
    )


class Web3ContractGateway(ContractGateway):
    """
    Typed access to the launchpad contracts over a ChainClient.

    Event queries decode raw logs once, at this boundary; undecodable logs are
    dropped by the decoder with a warning. View calls propagate ChainError:
    whether a failure is fatal is the caller's decision.
    """

    def __init__(
        self,
        *,
        chain: ChainClient,
        factory_address: str,
        marketplace_address: str,
    ) -> None:
        self._chain = chain
        self._factory = normalize_address(factory_address)
        self._marketplace = normalize_address(marketplace_address)

        self._token_created = AbiEventDecoder(TOKEN_CREATED_EVENT)
        self._token_listed = AbiEventDecoder(TOKEN_LISTED_EVENT)
        self._tokens_bought = AbiEventDecoder(TOKENS_BOUGHT_EVENT)
        self._tokens_sold = AbiEventDecoder(TOKENS_SOLD_EVENT)
        self._transfer = AbiEventDecoder(TRANSFER_EVENT)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _query(
        self,
        *,
        address: str,
        decoder: AbiEventDecoder,
        convert: Callable[[dict[str, Any]], E],
        from_block: int,
        to_block: int,
    ) -> list[E]:
        logs = await self._chain.get_logs(
            address=address,
            topic0=decoder.topic0,
            from_block=from_block,
            to_block=to_block,
        )
        out: list[E] = []
        for log in logs:
            decoded = decoder.decode(log)
            if decoded is None:
                continue
            out.append(convert(decoded))
        return out

    async def get_token_created_events(self, *, from_block: int, to_block: int) -> list[TokenCreated]:
        return await self._query(
            address=self._factory,
            decoder=self._token_created,
            convert=_to_token_created,
            from_block=from_block,
            to_block=to_block,
        )

    async def get_token_listed_events(self, *, from_block: int, to_block: int) -> list[TokenListed]:
        return await self._query(
            address=self._marketplace,
            decoder=self._token_listed,
            convert=_to_token_listed,
            from_block=from_block,
            to_block=to_block,
        )

    async def get_tokens_bought_events(self, *, from_block: int, to_block: int) -> list[TokensBought]:
        return await self._query(
            address=self._marketplace,
            decoder=self._tokens_bought,
            convert=_to_tokens_bought,
            from_block=from_block,
            to_block=to_block,
        )

    async def get_tokens_sold_events(self, *, from_block: int, to_block: int) -> list[TokensSold]:
        return await self._query(
            address=self._marketplace,
            decoder=self._tokens_sold,
            convert=_to_tokens_sold,
            from_block=from_block,
            to_block=to_block,
        )

    async def get_transfer_events(self, *, token_address: str, from_block: int, to_block: int) -> list[Transfer]:
        token = normalize_address(token_address)

        def convert(d: dict[str, Any]) -> Transfer:
            return Transfer(
                **_position(d),
                token_address=token,
                sender=d["from"],
                recipient=d["to"],
                value=d["value"],
            )

        return await self._query(
            address=token,
            decoder=self._transfer,
            convert=convert,
            from_block=from_block,
            to_block=to_block,
        )

    # ------------------------------------------------------------------
    # Factory views
    # ------------------------------------------------------------------

    async def get_all_tokens(self) -> list[str]:
        raw = await self._chain.call(address=self._factory, abi=TOKEN_FACTORY_ABI, function="getAllTokens")
        return [normalize_address(a) for a in raw]

    async def get_factory_token_info(self, token_address: str) -> FactoryTokenInfo:
        creator, total_supply, reserve_ratio, metadata_uri = await self._chain.call(
            address=self._factory,
            abi=TOKEN_FACTORY_ABI,
            function="getTokenInfo",
            args=(to_checksum_address(token_address),),
        )
        return FactoryTokenInfo(
            creator=normalize_address(creator),
            total_supply=int(total_supply),
            reserve_ratio=int(reserve_ratio),
            metadata_uri=str(metadata_uri),
        )

    # ------------------------------------------------------------------
    # Marketplace views
    # ------------------------------------------------------------------

    async def get_current_price(self, token_address: str) -> int:
        price = await self._chain.call(
            address=self._marketplace,
            abi=MARKETPLACE_ABI,
            function="getCurrentPrice",
            args=(to_checksum_address(token_address),),
        )
        return int(price)

    async def get_market_info(self, token_address: str) -> MarketInfo:
        current_supply, reserve_balance, reserve_ratio, trading_enabled = await self._chain.call(
            address=self._marketplace,
            abi=MARKETPLACE_ABI,
            function="getTokenInfo",
            args=(to_checksum_address(token_address),),
        )
        return MarketInfo(
            current_supply=int(current_supply),
            reserve_balance=int(reserve_balance),
            reserve_ratio=int(reserve_ratio),
            trading_enabled=bool(trading_enabled),
        )

    async def calculate_purchase_return(self, token_address: str, eth_amount: int) -> int:
        out = await self._chain.call(
            address=self._marketplace,
            abi=MARKETPLACE_ABI,
            function="calculatePurchaseReturn",
            args=(to_checksum_address(token_address), int(eth_amount)),
        )
        return int(out)

    async def calculate_sale_return(self, token_address: str, token_amount: int) -> int:
        out = await self._chain.call(
            address=self._marketplace,
            abi=MARKETPLACE_ABI,
            function="calculateSaleReturn",
            args=(to_checksum_address(token_address), int(token_amount)),
        )
        return int(out)

    # ------------------------------------------------------------------
    # ERC-20 views
    # ------------------------------------------------------------------

    async def get_token_details(self, token_address: str) -> TokenDetails:
        token = normalize_address(token_address)
        name = await self._chain.call(address=token, abi=ERC20_ABI, function="name")
        symbol = await self._chain.call(address=token, abi=ERC20_ABI, function="symbol")
        decimals = await self._chain.call(address=token, abi=ERC20_ABI, function="decimals")
        total_supply = await self._chain.call(address=token, abi=ERC20_ABI, function="totalSupply")
        return TokenDetails(
            name=str(name).strip(),
            symbol=str(symbol).strip(),
            decimals=int(decimals),
            total_supply=int(total_supply),
        )

    async def get_token_balance(self, token_address: str, holder_address: str) -> int:
        balance = await self._chain.call(
            address=normalize_address(token_address),
            abi=ERC20_ABI,
            function="balanceOf",
            args=(to_checksum_address(holder_address),),
        )
        return int(balance)
