#!/usr/bin/env python3
"""
Contract Monitor

Polls every monitored contract on Ethereum and INK at a fixed interval,
sets one gauge per contract, evaluates emergency rules on each fresh value,
and pushes the whole metric set once per tick.

Failure handling:
- RPC failures are retried with a fixed delay; exhausting retries on one
  contract is logged and the tick moves on to the next contract
- Decode failures are not retried; they point at a contract/shape mismatch
- Emergency submission failures are logged; the manager stays armed
"""

import logging
import threading
import time
from enum import Enum
from typing import List, Optional

from chain_errors import (
    DecodeError,
    RetryCancelledError,
    RetryExhaustedError,
    RpcError,
    SubmissionError,
)
from contract_accounts import ContractAccount
from contract_caller import ContractCaller
from emergency_manager import EmergencyManager
from metrics_sink import CHAIN_PRIMARY, CHAIN_SECONDARY, MetricSample, MetricsSink, metric_name
from retry_helper import retry_do

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


class ContractMonitor:
    def __init__(self, primary_caller: ContractCaller, secondary_caller: ContractCaller,
                 primary_accounts: List[ContractAccount], secondary_accounts: List[ContractAccount],
                 metrics: MetricsSink, emergency: EmergencyManager,
                 poll_interval: float = 60, retry_times: int = 3, retry_delay: float = 5):
        self.callers = {CHAIN_PRIMARY: primary_caller, CHAIN_SECONDARY: secondary_caller}
        self.accounts = {CHAIN_PRIMARY: primary_accounts, CHAIN_SECONDARY: secondary_accounts}
        self.metrics = metrics
        self.emergency = emergency
        self.poll_interval = poll_interval
        self.retry_times = retry_times
        self.retry_delay = retry_delay

        self.state = MonitorState.IDLE
        self._cancel_event = threading.Event()

        total = sum(len(a) for a in self.accounts.values())
        logger.info(f"Initialized ContractMonitor for {total} contracts (poll every {poll_interval}s)")

    def register_metrics(self) -> None:
        for chain, accounts in self.accounts.items():
            for account in accounts:
                self.metrics.register_contract_metric(chain, account.name)
        logger.info("Registered all contract metrics")

    def start(self, cancel_event: Optional[threading.Event] = None) -> None:
        """Poll immediately, then every poll_interval until cancelled or stopped

        Blocks the calling thread. A final forced push is made on exit.
        """
        if cancel_event is not None:
            self._cancel_event = cancel_event

        logger.info(f"🚀 Starting contract monitoring (interval: {self.poll_interval}s)")

        try:
            self.register_metrics()
            self.state = MonitorState.POLLING

            # ticks are anchored to the start time; ticks missed by a slow poll are dropped
            next_tick = time.monotonic()
            while True:
                self.poll_all()
                next_tick += self.poll_interval
                now = time.monotonic()
                if next_tick <= now:
                    missed = int((now - next_tick) // self.poll_interval) + 1
                    next_tick += missed * self.poll_interval
                    logger.warning(f"Poll overran the interval, skipped {missed} tick(s)")
                if self._cancel_event.wait(next_tick - now):
                    break
        finally:
            self.state = MonitorState.STOPPED
            logger.info("Contract monitoring stopped")
            self._final_push()

    def stop(self) -> None:
        self._cancel_event.set()

    def _final_push(self) -> None:
        try:
            self.metrics.push()
            logger.info("Final metrics push complete")
        except RpcError as e:
            logger.error(f"Final metrics push failed: {e}")

    def poll_all(self) -> List[MetricSample]:
        """Evaluate every contract on both chains, then push once"""
        logger.debug("Polling all contracts")
        samples = []
        for chain, accounts in self.accounts.items():
            for account in accounts:
                if self._cancel_event.is_set():
                    logger.info("Cancellation requested, ending tick early")
                    return samples
                sample = self.poll_contract(chain, account)
                if sample is not None:
                    samples.append(sample)

        try:
            self.metrics.push()
        except RpcError as e:
            logger.error(f"Failed to push metrics: {e}")
        return samples

    def poll_contract(self, chain: str, account: ContractAccount) -> Optional[MetricSample]:
        """Read one contract with retries; failures are logged, never raised"""
        caller = self.callers[chain]
        try:
            value = retry_do(
                self._cancel_event,
                lambda: account.monitor(caller),
                self.retry_times,
                self.retry_delay,
                retry_on=(RpcError,),
                description=f"{chain}/{account.name}",
            )
        except RetryCancelledError:
            logger.info(f"Poll of {chain}/{account.name} cancelled")
            return None
        except RetryExhaustedError as e:
            logger.error(f"Failed to check {chain} contract {account.name} ({account.address}): {e}")
            return None
        except DecodeError as e:
            logger.error(f"Unexpected response from {chain} contract {account.name} ({account.address}): {e}")
            return None
        except Exception as e:
            logger.exception(f"Unexpected error checking {chain} contract {account.name}: {e}")
            return None

        name = metric_name(chain, account.name)
        sample = MetricSample(chain=chain, contract_name=account.name, metric_name=name, value=value)
        self.metrics.set_contract_metric(chain, account.name, value)
        logger.info(f"Checked {chain} contract {account.name} ({account.category.value}): {value}")

        try:
            self.emergency.check_alert(sample.metric_name, sample.value)
        except SubmissionError as e:
            logger.error(f"Emergency response for {sample.metric_name} failed: {e}")

        return sample
