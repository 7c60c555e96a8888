"""Tests for the batched Safe withdrawal and its EIP-1559 submission."""

from unittest.mock import MagicMock

import pytest
from eth_abi import decode
from web3 import Account, Web3

from chain_errors import SubmissionError
from contract_caller import function_selector
from safe_delegate import (
    A_INK_WL_WETH,
    GATEWAY_V3,
    INK_BRIDGE_PROXY,
    MIN_GAS_LIMIT,
    SAFE_CALL_TUPLE,
    BatchCall,
    SafeDelegate,
    WithdrawalIntent,
    build_atoken_approval,
    build_gateway_withdraw_eth,
    build_safe_exec_transactions,
)
from conftest import TEST_PRIVATE_KEY

SAFE = Web3.to_checksum_address("0x00000000000000000000000000000000000000a1")
ARGUS = Web3.to_checksum_address("0x00000000000000000000000000000000000000a2")
AMOUNT = 3 * 10 ** 18

TIP = 1_000_000
BASE_FEE = 250_000
CHAIN_ID = 57073
TX_HASH = b"\x11" * 32


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.chain_id = CHAIN_ID
    w3.eth.estimate_gas.return_value = 21000
    w3.eth.max_priority_fee = TIP
    w3.eth.get_block.return_value = {"baseFeePerGas": BASE_FEE}
    w3.eth.send_raw_transaction.return_value = TX_HASH
    return w3


@pytest.fixture
def delegate(w3):
    pool = MagicMock()
    pool.ensure_connected.return_value = w3
    delegate = SafeDelegate(pool, TEST_PRIVATE_KEY, SAFE, ARGUS)
    delegate.account = MagicMock(wraps=delegate.account)
    return delegate


# ─── Calldata builders ───

def test_approval_calldata():
    data = build_atoken_approval(GATEWAY_V3, AMOUNT)
    assert data[:4].hex() == "095ea7b3"
    assert decode(["address", "uint256"], data[4:]) == (GATEWAY_V3.lower(), AMOUNT)


def test_withdraw_eth_calldata():
    data = build_gateway_withdraw_eth(INK_BRIDGE_PROXY, AMOUNT, SAFE)
    assert data[:4] == function_selector("withdrawETH(address,uint256,address)")
    assert decode(["address", "uint256", "address"], data[4:]) == (INK_BRIDGE_PROXY.lower(), AMOUNT, SAFE.lower())


def test_exec_transactions_wraps_calls_in_order():
    calls = [BatchCall(to=A_INK_WL_WETH, value=0, data=b"\x01\x02"), BatchCall(to=GATEWAY_V3, value=5, data=b"")]
    data = build_safe_exec_transactions(calls)

    assert data[:4] == function_selector(f"execTransactions({SAFE_CALL_TUPLE}[])")
    (decoded,) = decode([f"{SAFE_CALL_TUPLE}[]"], data[4:])
    assert decoded[0] == (0, A_INK_WL_WETH.lower(), 0, b"\x01\x02", b"", b"")
    assert decoded[1] == (0, GATEWAY_V3.lower(), 5, b"", b"", b"")


def test_withdrawal_batch_approves_then_withdraws_to_safe(delegate):
    data = delegate.build_withdrawal_batch(AMOUNT)
    (decoded,) = decode([f"{SAFE_CALL_TUPLE}[]"], data[4:])

    assert [call[1] for call in decoded] == [A_INK_WL_WETH.lower(), GATEWAY_V3.lower()]
    assert decoded[0][3] == build_atoken_approval(GATEWAY_V3, AMOUNT)
    assert decoded[1][3] == build_gateway_withdraw_eth(INK_BRIDGE_PROXY, AMOUNT, SAFE)


# ─── Submission ───

def test_withdraw_submits_signed_dynamic_fee_tx(delegate, w3):
    tx_hash = delegate.withdraw_eth_from_gateway(WithdrawalIntent(amount=AMOUNT, reason="test"))
    assert tx_hash == Web3.to_hex(TX_HASH)

    tx = delegate.account.sign_transaction.call_args[0][0]
    assert tx["type"] == 2
    assert tx["to"] == ARGUS
    assert tx["value"] == 0
    assert tx["nonce"] == 7
    assert tx["chainId"] == CHAIN_ID
    assert tx["gas"] == MIN_GAS_LIMIT
    assert tx["maxPriorityFeePerGas"] == TIP
    assert tx["maxFeePerGas"] == TIP + 2 * BASE_FEE
    assert tx["data"] == delegate.build_withdrawal_batch(AMOUNT)

    w3.eth.get_transaction_count.assert_called_once_with(delegate.bot, "pending")
    raw = w3.eth.send_raw_transaction.call_args[0][0]
    assert raw[0] == 2
    assert Account.recover_transaction(raw) == delegate.bot


def test_gas_estimate_above_floor_is_kept(delegate, w3):
    w3.eth.estimate_gas.return_value = 4_200_000
    delegate.send_transaction(ARGUS, 0, b"\x00")
    assert delegate.account.sign_transaction.call_args[0][0]["gas"] == 4_200_000


def test_estimate_failure_aborts_before_send(delegate, w3):
    w3.eth.estimate_gas.side_effect = ValueError("execution reverted")

    with pytest.raises(SubmissionError) as exc_info:
        delegate.withdraw_eth_from_gateway(WithdrawalIntent(amount=AMOUNT, reason="test"))

    assert exc_info.value.stage == "estimate_gas"
    w3.eth.send_raw_transaction.assert_not_called()


def test_send_failure_reports_submit_stage(delegate, w3):
    w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")
    with pytest.raises(SubmissionError) as exc_info:
        delegate.send_transaction(ARGUS, 0, b"")
    assert exc_info.value.stage == "submit"


def test_delegate_address_derives_from_key(delegate):
    assert delegate.bot == Account.from_key(TEST_PRIVATE_KEY).address
