#!/usr/bin/env python3
import logging
import time
from typing import Any, Callable, List, Optional

from web3 import Web3

from chain_errors import RpcError

logger = logging.getLogger(__name__)


class EVMProviderPool:
    def __init__(self, urls: List[str], request_timeout_s: int = 15, preference_reset_minutes: int = 60,
                 chain: str = "evm"):
        if not urls:
            raise ValueError("EVMProviderPool requires at least one URL")
        self.urls = urls
        self.chain = chain
        self.request_timeout_s = request_timeout_s
        self.preference_reset_sec = max(1, int(preference_reset_minutes) * 60)
        self._last_reset_ts = 0.0
        self._sticky_index: Optional[int] = None
        self._providers = {}

    def _should_reset_preferences(self) -> bool:
        now = time.time()
        if self._last_reset_ts == 0.0:
            self._last_reset_ts = now
            return False
        return (now - self._last_reset_ts) >= self.preference_reset_sec

    def _build_web3(self, index: int) -> Web3:
        if index not in self._providers:
            self._providers[index] = Web3(Web3.HTTPProvider(
                self.urls[index], request_kwargs={"timeout": self.request_timeout_s}
            ))
        return self._providers[index]

    def ensure_connected(self) -> Web3:
        """Return a Web3 instance for the most preferred reachable endpoint"""
        return self.call_with_failover(lambda w3: (w3, w3.eth.block_number)[0])

    def call_with_failover(self, fn: Callable[[Web3], Any]) -> Any:
        """Run fn(web3) against the sticky endpoint, then every endpoint in order"""
        # Reset preference on schedule
        if self._should_reset_preferences():
            self._last_reset_ts = time.time()
            self._sticky_index = None

        last_error: Optional[Exception] = None

        # 1) Try sticky provider first if available
        if self._sticky_index is not None:
            try:
                return fn(self._build_web3(self._sticky_index))
            except Exception as e:
                last_error = e
                logger.debug(f"{self.chain} endpoint #{self._sticky_index} failed: {e}")
                # sticky failed; clear it and proceed to full scan
                self._sticky_index = None

        # 2) Scan from beginning to pick the most preferred working provider
        for i in range(len(self.urls)):
            try:
                result = fn(self._build_web3(i))
                self._sticky_index = i
                return result
            except Exception as e:
                last_error = e
                logger.debug(f"{self.chain} endpoint #{i} failed: {e}")
                continue

        raise RpcError(f"All {self.chain} RPC endpoints failed: {last_error}")
