import pytest
from web3 import Web3

from chain_errors import RpcError
from contract_caller import ContractCaller

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


def word(value: int, signed: bool = False) -> bytes:
    return value.to_bytes(32, "big", signed=signed)


class FakeCaller(ContractCaller):
    """ContractCaller answering from a table keyed by (address, calldata)"""

    def __init__(self, chain: str = "ink"):
        super().__init__(pool=None, chain=chain)
        self.responses = {}
        self.calls = []

    def respond(self, address: str, calldata: bytes, result):
        self.responses[(Web3.to_checksum_address(address), calldata)] = result

    def call(self, address, calldata, block_identifier="latest"):
        key = (Web3.to_checksum_address(address), calldata)
        self.calls.append(key)
        if key not in self.responses:
            raise RpcError(f"no response configured for {key}")
        result = self.responses[key]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_caller():
    return FakeCaller("ink")


@pytest.fixture
def fake_primary_caller():
    return FakeCaller("ethereum")
