#!/usr/bin/env python3
"""
INK/Ethereum Contract Monitor

Watches pause flags, oracle spread and supply headroom of the INK bridge and
lending contracts, pushes them to a Prometheus push gateway, and (when
enabled) withdraws funds through the Safe delegate on the first alert.

Usage:
    ink-eth-monitor [--config config.json] [--once] [--verbose]
    ink-eth-monitor --validate-config
"""

import argparse
import logging
import signal
import sys
import threading

from chain_errors import ConfigError
from config_manager import ConfigManager
from contract_accounts import build_accounts
from contract_caller import ContractCaller
from contract_monitor import ContractMonitor
from emergency_manager import EmergencyManager
from logger_utils import setup_logging
from metrics_sink import CHAIN_PRIMARY, CHAIN_SECONDARY, MetricsSink
from rpc_failover import EVMProviderPool
from safe_delegate import SafeDelegate

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Monitor INK/Ethereum contracts and respond to emergencies")
    parser.add_argument("--config", type=str, default="config.json", help="Path to the JSON configuration file")
    parser.add_argument("--once", action="store_true", help="Run a single polling cycle and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-color", action="store_true", help="Disable colored logs")
    parser.add_argument("--validate-config", action="store_true", help="Validate the configuration and exit")
    return parser.parse_args(argv)


def build_monitor(config_manager: ConfigManager) -> ContractMonitor:
    """Wire pools, callers, metrics, emergency manager and the contract set"""
    reset_minutes = config_manager.get_rpc_preference_reset_minutes()
    eth_pool = EVMProviderPool(config_manager.get_eth_rpc_urls(),
                               preference_reset_minutes=reset_minutes, chain=CHAIN_PRIMARY)
    ink_pool = EVMProviderPool(config_manager.get_ink_rpc_urls(),
                               preference_reset_minutes=reset_minutes, chain=CHAIN_SECONDARY)
    eth_caller = ContractCaller(eth_pool, CHAIN_PRIMARY)
    ink_caller = ContractCaller(ink_pool, CHAIN_SECONDARY)

    metrics = MetricsSink(config_manager.get_gateway_url(), config_manager.get_job_name())

    # the withdrawal is executed on INK, where the Safe holds the position
    emergency = EmergencyManager.from_config(
        config_manager,
        lambda cfg: SafeDelegate(ink_pool, cfg["private_key"], cfg["safe_address"], cfg["argus_address"]),
    )

    primary_accounts, secondary_accounts = build_accounts(config_manager, eth_caller)

    return ContractMonitor(
        eth_caller,
        ink_caller,
        primary_accounts,
        secondary_accounts,
        metrics,
        emergency,
        poll_interval=config_manager.get_poll_interval(),
        retry_times=config_manager.get_retry_times(),
        retry_delay=config_manager.get_retry_delay(),
    )


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config_manager = ConfigManager(args.config)
    except ConfigError as e:
        print(f"Failed to load config: {e}", file=sys.stderr)
        return 1

    log_config = config_manager.get_log_config()
    setup_logging(
        level=log_config.get("level", "info"),
        fmt=log_config.get("format", "console"),
        output=log_config.get("output"),
        verbose=args.verbose,
        no_color=args.no_color,
    )

    result = config_manager.validate_config()
    for warning in result["warnings"]:
        logger.warning(f"Config warning: {warning}")
    if not result["valid"]:
        for error in result["errors"]:
            logger.error(f"Config error: {error}")
        return 1
    if args.validate_config:
        logger.info("✅ Configuration is valid")
        return 0

    try:
        monitor = build_monitor(config_manager)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"📍 Ethereum RPC endpoints: {len(config_manager.get_eth_rpc_urls())}")
    logger.info(f"📍 INK RPC endpoints: {len(config_manager.get_ink_rpc_urls())}")
    logger.info(f"📍 Push gateway: {config_manager.get_gateway_url()} (job {config_manager.get_job_name()})")
    logger.info(f"📍 Emergency response: {monitor.emergency.state.value}")

    if args.once:
        monitor.register_metrics()
        samples = monitor.poll_all()
        logger.info(f"Run complete | samples: {len(samples)}")
        return 0

    cancel_event = threading.Event()

    def _signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        cancel_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        monitor.start(cancel_event)
    finally:
        monitor.emergency.close()
        monitor.metrics.close()

    logger.info("👋 Monitor exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
