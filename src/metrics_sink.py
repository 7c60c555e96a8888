#!/usr/bin/env python3
"""
Metrics sink

One gauge per (chain, contract), registered up front and pushed as a single
batch to a Prometheus push gateway. Values stay in the registry after a
failed push so the next push carries them.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import requests
from prometheus_client import CollectorRegistry, Gauge, push_to_gateway

from chain_errors import RpcError

logger = logging.getLogger(__name__)

CHAIN_PRIMARY = "ethereum"
CHAIN_SECONDARY = "ink"

METRIC_NAMES = {
    "ethereum_super_chain_config": "ink_eth_monitor_superchain_paused",
    "ethereum_ink_optimism_portal": "ink_eth_monitor_optimism_portal_paused",
    "ethereum_l1_standard_bridge": "ink_eth_monitor_standard_bridge_paused",
    "ink_aave_protocol_data_provider": "ink_eth_monitor_tydro_pool_paused",
    "ink_chaos_push_oracle": "ink_eth_monitor_oracle_price_spread",
    "ink_variable_debt_InkWlWETH": "ink_eth_monitor_remaining_supply",
}


@dataclass(frozen=True)
class MetricSample:
    chain: str
    contract_name: str
    metric_name: str
    value: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def metric_name(chain: str, contract_name: str) -> str:
    """Static name for known contracts, generated name otherwise"""
    key = f"{chain}_{contract_name}"
    return METRIC_NAMES.get(key, f"monitor_{chain}_{contract_name}")


def requests_push_handler(url, method, timeout, headers, data):
    """prometheus_client push handler that sends through requests"""
    def handle():
        response = requests.request(method, url, data=data, headers=dict(headers), timeout=timeout)
        response.raise_for_status()
    return handle


class MetricsSink:
    def __init__(self, gateway_url: str, job_name: str, timeout_s: float = 10,
                 registry: Optional[CollectorRegistry] = None):
        self.gateway_url = gateway_url
        self.job_name = job_name
        self.timeout_s = timeout_s
        self.registry = registry or CollectorRegistry()
        self._gauges: Dict[Tuple[str, str], Gauge] = {}
        self._lock = threading.RLock()

    def register_contract_metric(self, chain: str, contract_name: str) -> str:
        """Register the gauge for (chain, contract); idempotent"""
        name = metric_name(chain, contract_name)
        with self._lock:
            if (chain, contract_name) in self._gauges:
                return name
            gauge = Gauge(
                name,
                f"Monitor metric for {chain} contract {contract_name}",
                labelnames=["chain", "contract"],
                registry=self.registry,
            )
            self._gauges[(chain, contract_name)] = gauge
        logger.info(f"Registered metric {name} for {chain}/{contract_name}")
        return name

    def set_contract_metric(self, chain: str, contract_name: str, value: float) -> None:
        with self._lock:
            gauge = self._gauges.get((chain, contract_name))
            if gauge is None:
                logger.warning(f"Metric not registered: {chain}_{contract_name}")
                return
            gauge.labels(chain=chain, contract=contract_name).set(value)
        logger.debug(f"Set {chain}_{contract_name} = {value}")

    def batch_set_metrics(self, samples: Iterable[MetricSample]) -> None:
        for sample in samples:
            self.set_contract_metric(sample.chain, sample.contract_name, sample.value)

    def get_value(self, chain: str, contract_name: str) -> Optional[float]:
        return self.registry.get_sample_value(
            metric_name(chain, contract_name), {"chain": chain, "contract": contract_name}
        )

    def registered_keys(self) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._gauges)

    def push(self) -> None:
        """Push every gauge in one request; raises RpcError on failure"""
        with self._lock:
            try:
                push_to_gateway(
                    self.gateway_url,
                    job=self.job_name,
                    registry=self.registry,
                    timeout=self.timeout_s,
                    handler=requests_push_handler,
                )
            except Exception as e:
                raise RpcError(f"Failed to push metrics to {self.gateway_url}: {e}") from e
        logger.debug(f"Pushed {len(self._gauges)} metrics to {self.gateway_url}")

    def close(self) -> None:
        logger.info("Closing metrics sink")
