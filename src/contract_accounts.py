#!/usr/bin/env python3
"""
Monitored contract accounts

One class per monitored contract. Each builds its own calldata, picks its
decoder, and reduces the answer to a single float metric:

- pause flags (superchain config, optimism portal, standard bridge) -> 1.0 / 0.0
- Aave data provider getPaused(WETH)                                -> 1.0 / 0.0
- Chaos push oracle latestAnswer()                                  -> price (8 decimals)
- variable debt InkWlWETH                                           -> supply cap headroom (tokens)

Any RPC or decode failure propagates out of monitor(); nothing is defaulted.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from web3 import Web3

from chain_errors import DecodeError
from contract_caller import ContractCaller, build_calldata, encode_address_word, word_at

logger = logging.getLogger(__name__)

# Ethereum L1 defaults (overridable from config)
DEFAULT_L1_SUPERCHAIN_CONFIG = "0x95703e0982140D16f8ebA6d158FccEde42f04a4C"
DEFAULT_L1_STANDARD_BRIDGE = "0x88FF1e5b602916615391F55854588EFcBB7663f0"
DEFAULT_L1_INK_OPTIMISM_PORTAL = "0x5d66C1782664115999C47c9fA5cd031f495D3e4F"
DEFAULT_L1_CHAINLINK_ETH_USD = "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419"

# INK L2 defaults (overridable from config)
DEFAULT_L2_AAVE_PROTOCOL_DATA_PROVIDER = "0x96086C25d13943C80Ff9a19791a40Df6aFC08328"
DEFAULT_L2_CHAOS_PUSH_ORACLE = "0x163131609562E578754aF12E998635BfCa56712C"
DEFAULT_L2_VARIABLE_DEBT_INK_WL_WETH = "0xc1457AcfBaD2332b07B7651A4Da3176E8F3Bc9E4"
L2_WETH = "0x4200000000000000000000000000000000000006"

PRICE_FEED_DECIMALS = 8
TOKEN_DECIMALS = 18
PRICE_DEVIATION_THRESHOLD = 0.05


class Category(str, Enum):
    PAUSE_SIMPLE = "pause_simple"
    GET_PAUSED = "get_paused"
    PRICE_FEED = "price_feed"
    RESERVE_CAP = "reserve_cap"


@dataclass(frozen=True)
class ContractDescriptor:
    name: str
    address: str
    category: Category


class ContractAccount:
    """Base class for a monitored contract; subclasses implement monitor()"""

    NAME = ""
    CATEGORY: Category = Category.PAUSE_SIMPLE

    def __init__(self, address: str, name: Optional[str] = None):
        self.descriptor = ContractDescriptor(
            name=name or self.NAME,
            address=Web3.to_checksum_address(address),
            category=self.CATEGORY,
        )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def address(self) -> str:
        return self.descriptor.address

    @property
    def category(self) -> Category:
        return self.descriptor.category

    def monitor(self, caller: ContractCaller) -> float:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name}@{self.address})"


class PauseSimpleContract(ContractAccount):
    """Contracts exposing paused() -> bool"""

    CATEGORY = Category.PAUSE_SIMPLE

    def monitor(self, caller: ContractCaller) -> float:
        paused = caller.call_bool(self.address, build_calldata("paused()"))
        return 1.0 if paused else 0.0


class SuperChainConfig(PauseSimpleContract):
    NAME = "super_chain_config"


class InkOptimismPortal(PauseSimpleContract):
    NAME = "ink_optimism_portal"


class InkStandardBridge(PauseSimpleContract):
    NAME = "l1_standard_bridge"


class AaveProtocolDataProvider(ContractAccount):
    """Lending pool pause flag for one reserve asset via getPaused(address)"""

    NAME = "aave_protocol_data_provider"
    CATEGORY = Category.GET_PAUSED

    def __init__(self, address: str, asset: str = L2_WETH, name: Optional[str] = None):
        super().__init__(address, name)
        self.asset = asset

    def monitor(self, caller: ContractCaller) -> float:
        data = build_calldata("getPaused(address)", encode_address_word(self.asset))
        paused = caller.call_bool(self.address, data)
        return 1.0 if paused else 0.0


class ChaosPushOracle(ContractAccount):
    """Push oracle price via latestAnswer(), scaled down by 10^8"""

    NAME = "chaos_push_oracle"
    CATEGORY = Category.PRICE_FEED

    def monitor(self, caller: ContractCaller) -> float:
        answer = caller.call_int256(self.address, build_calldata("latestAnswer()"))
        return answer / 10 ** PRICE_FEED_DECIMALS


class VariableDebtInkWlWETH(ContractAccount):
    """Remaining supply cap headroom, in whole tokens

    getReserveCaps(asset) on the data provider returns (borrowCap, supplyCap)
    with caps already in whole tokens; totalSupply() on the token is in
    18-decimal base units. A negative result means the cap is exceeded.
    """

    NAME = "variable_debt_InkWlWETH"
    CATEGORY = Category.RESERVE_CAP

    def __init__(self, address: str, data_provider: str = DEFAULT_L2_AAVE_PROTOCOL_DATA_PROVIDER,
                 asset: str = L2_WETH, name: Optional[str] = None):
        super().__init__(address, name)
        self.data_provider = Web3.to_checksum_address(data_provider)
        self.asset = asset

    def monitor(self, caller: ContractCaller) -> float:
        caps = caller.call_raw(
            self.data_provider,
            build_calldata("getReserveCaps(address)", encode_address_word(self.asset)),
        )
        supply_cap = word_at(caps, 1)

        total_supply = caller.call_uint256(self.address, build_calldata("totalSupply()"))
        total_supply_tokens = total_supply / 10 ** TOKEN_DECIMALS

        return supply_cap - total_supply_tokens


class PriceDeviationMonitor(ContractAccount):
    """Wraps a price feed and reports a cross-chain deviation alert flag

    The wrapped feed is read on its own chain, the reference feed through
    reference_caller. The reported value is 1.0 when
    |price - reference| / reference is strictly above the threshold, else 0.0.
    """

    def __init__(self, feed: ContractAccount, reference: ContractAccount, reference_caller: ContractCaller,
                 threshold: float = PRICE_DEVIATION_THRESHOLD):
        self.feed = feed
        self.reference = reference
        self.reference_caller = reference_caller
        self.threshold = threshold
        self.descriptor = feed.descriptor
        self.last_deviation: Optional[float] = None

    def monitor(self, caller: ContractCaller) -> float:
        price = self.feed.monitor(caller)
        reference_price = self.reference.monitor(self.reference_caller)
        if reference_price == 0:
            raise DecodeError(DecodeError.ZERO_REFERENCE,
                              f"reference feed {self.reference.name} reported 0")
        if reference_price < 0:
            raise DecodeError(DecodeError.NEGATIVE_REFERENCE,
                              f"reference feed {self.reference.name} reported {reference_price}")

        deviation = abs(price - reference_price) / reference_price
        self.last_deviation = deviation
        value = 1.0 if deviation > self.threshold else 0.0

        logger.info(
            f"Price deviation {self.name}: price={price} reference={reference_price} "
            f"deviation={deviation:.6f} alert={value}"
        )
        return value


def build_accounts(config_manager, primary_caller: ContractCaller) -> Tuple[List[ContractAccount], List[ContractAccount]]:
    """Build the (primary, secondary) account lists with config overrides applied"""
    addr = config_manager.get_contract_address

    primary = [
        SuperChainConfig(addr('l1', 'superchain_config', DEFAULT_L1_SUPERCHAIN_CONFIG)),
        InkOptimismPortal(addr('l1', 'ink_optimism_portal', DEFAULT_L1_INK_OPTIMISM_PORTAL)),
        InkStandardBridge(addr('l1', 'standard_bridge', DEFAULT_L1_STANDARD_BRIDGE)),
    ]

    data_provider = addr('l2', 'aave_protocol_data_provider', DEFAULT_L2_AAVE_PROTOCOL_DATA_PROVIDER)
    chainlink = ChaosPushOracle(
        addr('l1', 'chainlink_eth_usd', DEFAULT_L1_CHAINLINK_ETH_USD), name="chainlink_eth_usd"
    )
    secondary = [
        AaveProtocolDataProvider(data_provider),
        PriceDeviationMonitor(
            ChaosPushOracle(addr('l2', 'chaos_push_oracle', DEFAULT_L2_CHAOS_PUSH_ORACLE)),
            reference=chainlink,
            reference_caller=primary_caller,
        ),
        VariableDebtInkWlWETH(
            addr('l2', 'variable_debt_inkwlweth', DEFAULT_L2_VARIABLE_DEBT_INK_WL_WETH),
            data_provider=data_provider,
        ),
    ]
    return primary, secondary
