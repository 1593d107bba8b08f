from __future__ import annotations

import logging
from typing import Any, Mapping

from eth_abi import decode as abi_decode
from eth_utils import keccak

from launchpad_indexer.app.domain.models import normalize_hash

logger = logging.getLogger(__name__)


class AbiEventDecoder:
    """
    ABI-based decoder for a single event.

    It:
    - computes topic0 = keccak("EventName(type1,type2,...)"),
    - decodes indexed args from topics[1:] (address / uint / bytes32),
    - decodes non-indexed args from `data` with eth_abi.

    decode() returns a dict keyed by ABI input names plus the log position
    fields, or None when the log is not this event or cannot be decoded.
    """

    def __init__(self, event_abi: Mapping[str, Any]) -> None:
        self._event_abi = event_abi
        self._name = str(event_abi["name"])
        self._signature = self._event_signature(event_abi)
        self._topic0 = keccak(text=self._signature)

        self._inputs: list[Mapping[str, Any]] = list(event_abi.get("inputs", []))
        self._indexed_inputs = [i for i in self._inputs if i.get("indexed") is True]
        self._non_indexed_inputs = [i for i in self._inputs if not i.get("indexed")]

        self._non_indexed_types = [i["type"] for i in self._non_indexed_inputs]
        self._non_indexed_names = [i["name"] for i in self._non_indexed_inputs]

    @property
    def name(self) -> str:
        return self._name

    @property
    def topic0(self) -> bytes:
        return self._topic0

    @property
    def event_signature(self) -> str:
        return self._signature

    def decode(self, log: Mapping[str, Any]) -> dict[str, Any] | None:
        topics = [self._as_bytes(t) for t in log.get("topics", [])]

        # 1) must match expected event
        if not topics or topics[0] != self._topic0:
            return None

        # 2) one topic per indexed input
        if len(topics) - 1 != len(self._indexed_inputs):
            logger.warning(
                "Skipping %s log with %s indexed topics (expected %s), tx=%s",
                self._name,
                len(topics) - 1,
                len(self._indexed_inputs),
                log.get("transactionHash"),
            )
            return None

        try:
            out: dict[str, Any] = {}
            for inp, topic in zip(self._indexed_inputs, topics[1:], strict=True):
                out[inp["name"]] = self._decode_topic(inp["type"], topic)
            out.update(self._decode_non_indexed_data(self._as_bytes(log.get("data", b""))))
        except Exception as exc:
            logger.warning(
                "Skipping undecodable %s log tx=%s: %s",
                self._name,
                log.get("transactionHash"),
                exc,
            )
            return None

        out["block_number"] = int(log["blockNumber"])
        out["transaction_hash"] = normalize_hash(log["transactionHash"])
        out["log_index"] = int(log.get("logIndex", 0))
        return out

    # ---------------------------------------------------------------------
    # ABI helpers
    # ---------------------------------------------------------------------

    def _event_signature(self, event_abi: Mapping[str, Any]) -> str:
        name = event_abi.get("name")
        inputs = event_abi.get("inputs", [])
        if not isinstance(name, str) or not isinstance(inputs, list):
            raise ValueError("Invalid event ABI: missing name/inputs")
        types: list[str] = []
        for inp in inputs:
            if not isinstance(inp, dict) or "type" not in inp:
                raise ValueError("Invalid event ABI inputs")
            types.append(inp["type"])
        return f"{name}({','.join(types)})"

    def _decode_non_indexed_data(self, data: bytes) -> dict[str, Any]:
        if not self._non_indexed_inputs:
            return {}
        values = abi_decode(self._non_indexed_types, data)

        out: dict[str, Any] = {}
        for name, typ, val in zip(self._non_indexed_names, self._non_indexed_types, values, strict=True):
            out[name] = self._normalize_abi_value(typ, val)
        return out

    # ---------------------------------------------------------------------
    # Topic / ABI value normalization
    # ---------------------------------------------------------------------

    @staticmethod
    def _as_bytes(value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str):
            s = value[2:] if value.startswith("0x") else value
            return bytes.fromhex(s)
        raise TypeError(f"Unsupported topic/data value: {type(value).__name__}")

    def _decode_topic(self, typ: str, topic: bytes) -> Any:
        if len(topic) != 32:
            raise ValueError(f"Expected 32-byte topic, got len={len(topic)}")
        if typ == "address":
            return "0x" + topic[-20:].hex()
        if typ.startswith("uint"):
            return int.from_bytes(topic, byteorder="big", signed=False)
        if typ.startswith("int"):
            return int.from_bytes(topic, byteorder="big", signed=True)
        if typ == "bool":
            return topic[-1] == 1
        # Dynamic indexed types (string, bytes) are stored as their hash.
        return "0x" + topic.hex()

    def _normalize_abi_value(self, typ: str, val: Any) -> Any:
        if typ == "address":
            return str(val).lower()
        if typ.startswith("uint") or typ.startswith("int"):
            return int(val)
        if typ.startswith("bytes"):
            return bytes(val)
        if typ == "string":
            return str(val)
        return val
