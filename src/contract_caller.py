#!/usr/bin/env python3
"""
Raw contract call layer

Issues read-only eth_call requests with hand-built calldata and decodes the
fixed-width answers we care about (bool, uint256, int256, raw words) without
loading an ABI. Only these primitive shapes are supported.
"""

import logging
from typing import Union

from web3 import Web3

from chain_errors import DecodeError
from rpc_failover import EVMProviderPool

logger = logging.getLogger(__name__)

WORD_SIZE = 32


def function_selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 over a canonical signature like 'getPaused(address)'"""
    if any(c.isspace() for c in signature):
        raise ValueError(f"Canonical signature must not contain whitespace: {signature!r}")
    return bytes(Web3.keccak(text=signature)[:4])


def encode_address_word(address: Union[str, bytes]) -> bytes:
    """Left-pad a 20-byte address to a 32-byte word"""
    raw = bytes.fromhex(address[2:] if address.startswith("0x") else address) if isinstance(address, str) else address
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}")
    return raw.rjust(WORD_SIZE, b"\x00")


def encode_uint_word(value: int) -> bytes:
    if value < 0:
        raise ValueError("uint256 word must not be negative")
    return value.to_bytes(WORD_SIZE, "big")


def build_calldata(signature: str, *words: bytes) -> bytes:
    """Selector followed by already-encoded 32-byte argument words"""
    for word in words:
        if len(word) != WORD_SIZE:
            raise ValueError(f"Argument words must be {WORD_SIZE} bytes, got {len(word)}")
    return function_selector(signature) + b"".join(words)


def _require_length(raw: bytes, length: int) -> None:
    if len(raw) < length:
        raise DecodeError(
            DecodeError.SHORT_BUFFER,
            f"expected at least {length} bytes, got {len(raw)}",
            length=len(raw),
        )


def as_bool(raw: bytes) -> bool:
    _require_length(raw, WORD_SIZE)
    return raw[WORD_SIZE - 1] == 1


def as_uint256(raw: bytes) -> int:
    _require_length(raw, WORD_SIZE)
    return int.from_bytes(raw[:WORD_SIZE], "big")


def as_int256(raw: bytes) -> int:
    # two's complement: a negative oracle answer decodes as a negative number
    _require_length(raw, WORD_SIZE)
    return int.from_bytes(raw[:WORD_SIZE], "big", signed=True)


def as_raw(raw: bytes) -> bytes:
    return bytes(raw)


def word_at(raw: bytes, index: int) -> int:
    """Unsigned value of the index-th 32-byte word of a tuple return"""
    end = (index + 1) * WORD_SIZE
    _require_length(raw, end)
    return int.from_bytes(raw[end - WORD_SIZE:end], "big")


class ContractCaller:
    """Read-only call access to one chain"""

    def __init__(self, pool: EVMProviderPool, chain: str):
        self.pool = pool
        self.chain = chain

    def call(self, address: str, calldata: bytes, block_identifier: str = "latest") -> bytes:
        """eth_call against address; raises RpcError when every endpoint fails"""
        to = Web3.to_checksum_address(address)
        tx = {"to": to, "data": "0x" + calldata.hex()}
        logger.debug(f"eth_call on {self.chain}: to={to} selector=0x{calldata[:4].hex()}")
        result = self.pool.call_with_failover(lambda w3: w3.eth.call(tx, block_identifier))
        return bytes(result)

    def call_bool(self, address: str, calldata: bytes) -> bool:
        return as_bool(self.call(address, calldata))

    def call_uint256(self, address: str, calldata: bytes) -> int:
        return as_uint256(self.call(address, calldata))

    def call_int256(self, address: str, calldata: bytes) -> int:
        return as_int256(self.call(address, calldata))

    def call_raw(self, address: str, calldata: bytes) -> bytes:
        return as_raw(self.call(address, calldata))
