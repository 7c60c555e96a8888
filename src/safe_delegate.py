#!/usr/bin/env python3
"""
Safe delegate for the emergency withdrawal

Builds the two-call batch (approve the WETH gateway to pull aTokens, then
withdraw ETH to the Safe), wraps it in a single execTransactions payload for
the Argus module guarding the Safe, and signs and submits it as an EIP-1559
transaction from the delegate key. Any failing step aborts the submission.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from eth_abi import encode
from web3 import Account, Web3

from chain_errors import SubmissionError
from contract_caller import function_selector
from rpc_failover import EVMProviderPool

logger = logging.getLogger(__name__)

INK_BRIDGE_PROXY = Web3.to_checksum_address("0x2816cf15F6d2A220E789aA011D5EE4eB6c47FEbA")
GATEWAY_V3 = Web3.to_checksum_address("0xDe090EfCD6ef4b86792e2D84E55a5fa8d49D25D2")
A_INK_WL_WETH = Web3.to_checksum_address("0x2B35eF056728BaFFaC103e3b81cB029788006EF9")

MIN_GAS_LIMIT = 3_000_000
SAFE_CALL_TUPLE = "(uint256,address,uint256,bytes,bytes,bytes)"


@dataclass(frozen=True)
class WithdrawalIntent:
    amount: int
    reason: str


@dataclass(frozen=True)
class BatchCall:
    to: str
    value: int
    data: bytes


def build_atoken_approval(spender: str, amount: int) -> bytes:
    return function_selector("approve(address,uint256)") + encode(
        ["address", "uint256"], [Web3.to_checksum_address(spender), amount]
    )


def build_gateway_withdraw_eth(pool: str, amount: int, to: str) -> bytes:
    return function_selector("withdrawETH(address,uint256,address)") + encode(
        ["address", "uint256", "address"],
        [Web3.to_checksum_address(pool), amount, Web3.to_checksum_address(to)],
    )


def build_safe_exec_transactions(calls: List[BatchCall]) -> bytes:
    """execTransactions over ordered (flag, to, value, data, hint, extra) tuples, flag 0 and no hints"""
    tuples = [(0, Web3.to_checksum_address(c.to), c.value, c.data, b"", b"") for c in calls]
    return function_selector(f"execTransactions({SAFE_CALL_TUPLE}[])") + encode(
        [f"{SAFE_CALL_TUPLE}[]"], [tuples]
    )


class SafeDelegate:
    def __init__(self, pool: EVMProviderPool, private_key: str, safe_address: str, argus_address: str):
        self.pool = pool
        self.account = Account.from_key(private_key)
        self.bot = self.account.address
        self.safe = Web3.to_checksum_address(safe_address)
        self.argus = Web3.to_checksum_address(argus_address)
        logger.info(f"Delegate {self.bot} acting for Safe {self.safe} via {self.argus}")

    def build_withdrawal_batch(self, amount: int) -> bytes:
        calls = [
            BatchCall(to=A_INK_WL_WETH, value=0, data=build_atoken_approval(GATEWAY_V3, amount)),
            BatchCall(to=GATEWAY_V3, value=0, data=build_gateway_withdraw_eth(INK_BRIDGE_PROXY, amount, self.safe)),
        ]
        return build_safe_exec_transactions(calls)

    def withdraw_eth_from_gateway(self, intent: WithdrawalIntent) -> str:
        """Submit the batched withdrawal; returns the transaction hash"""
        try:
            data = self.build_withdrawal_batch(intent.amount)
        except Exception as e:
            raise SubmissionError("build", str(e)) from e

        tx_hash = self.send_transaction(self.argus, 0, data)
        logger.info(f"Transaction sent: {tx_hash} (amount={intent.amount}, reason={intent.reason})")
        return tx_hash

    def _stage(self, stage: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(stage, str(e)) from e

    def send_transaction(self, to: str, value: int, data: bytes) -> str:
        w3 = self._stage("connect", self.pool.ensure_connected)

        nonce = self._stage("nonce", lambda: w3.eth.get_transaction_count(self.bot, "pending"))
        chain_id = self._stage("chain_id", lambda: w3.eth.chain_id)

        gas_limit = self._stage("estimate_gas", lambda: w3.eth.estimate_gas({
            "from": self.bot,
            "to": to,
            "value": value,
            "data": "0x" + data.hex(),
        }))
        gas_limit = max(int(gas_limit), MIN_GAS_LIMIT)
        logger.info(f"Gas limit: {gas_limit}")

        tip_cap = self._stage("priority_fee", lambda: w3.eth.max_priority_fee)
        base_fee = self._stage("base_fee", lambda: w3.eth.get_block("latest")["baseFeePerGas"])
        fee_cap = tip_cap + 2 * base_fee

        tx: Dict[str, Any] = {
            "type": 2,
            "chainId": chain_id,
            "nonce": nonce,
            "maxPriorityFeePerGas": tip_cap,
            "maxFeePerGas": fee_cap,
            "gas": gas_limit,
            "to": to,
            "value": value,
            "data": data,
        }
        signed = self._stage("sign", lambda: self.account.sign_transaction(tx))
        tx_hash = self._stage("submit", lambda: w3.eth.send_raw_transaction(signed.rawTransaction))
        return Web3.to_hex(tx_hash)
