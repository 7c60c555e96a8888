#!/usr/bin/env python3
"""
Configuration Manager for the INK/Ethereum Contract Monitor

Loads a single JSON configuration with:
1. Environment variable substitution (${VAR} patterns)
2. .env loading for secrets (RPC keys, delegate private key)
3. Validation, with emergency settings checked only when the feature is on
4. Built-in defaults for contract addresses and monitoring cadence
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from chain_errors import ConfigError

# look for .env file in the repository root
load_dotenv(Path(__file__).parent.parent / '.env')

DEFAULT_POLL_INTERVAL = 60
DEFAULT_RETRY_TIMES = 3
DEFAULT_RETRY_DELAY = 5
DEFAULT_JOB_NAME = "ink_eth_monitor"
DEFAULT_PUSH_INTERVAL = 15

_ADDRESS_RE = re.compile(r'^0x[0-9a-fA-F]{40}$')
_PRIVATE_KEY_RE = re.compile(r'^(0x)?[0-9a-fA-F]{64}$')


def _is_http_url(s: Any) -> bool:
    return isinstance(s, str) and s.startswith(('http://', 'https://'))


def _is_address(s: Any) -> bool:
    return isinstance(s, str) and bool(_ADDRESS_RE.match(s))


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


class ConfigManager:
    """Configuration manager for the two-chain contract monitor"""

    def __init__(self, config_file: Optional[str] = None, config_data: Optional[Dict[str, Any]] = None):
        self.config_file = config_file or "config.json"
        if config_data is not None:
            self._config_data = config_data
        else:
            self._config_data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from JSON file"""
        config_path = Path(self.config_file)
        if not config_path.is_absolute() and not config_path.exists():
            config_path = Path(__file__).parent.parent / self.config_file

        try:
            with open(config_path, 'r') as f:
                content = f.read()
        except FileNotFoundError:
            raise ConfigError(f"Config file {config_path} not found")

        # substitute environment variables
        content = self._substitute_env_vars(content)
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file {config_path}: {e}")

    def _substitute_env_vars(self, content: str) -> str:
        """Substitute ${VAR} patterns with environment variables"""
        def replace_var(match):
            var_name = match.group(1)
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigError(f"Environment variable {var_name} is not set")
            return env_value

        # pattern to match ${VAR_NAME}
        pattern = r'\$\{([A-Z_][A-Z0-9_]*)\}'
        return re.sub(pattern, replace_var, content)

    def validate_config(self) -> Dict[str, Any]:
        """Validate the configuration and return validation results"""
        errors = []
        warnings = []

        for chain in ('eth', 'ink'):
            urls = self._config_data.get(f'{chain}_rpc_urls')
            url = self._config_data.get(f'{chain}_rpc')
            if urls is not None:
                if not isinstance(urls, list) or not urls or not all(_is_http_url(u) for u in urls):
                    errors.append(f"{chain}_rpc_urls must be a non-empty list of HTTP/HTTPS URLs")
            elif url:
                if not _is_http_url(url):
                    errors.append(f"{chain}_rpc must be a valid HTTP/HTTPS URL")
            else:
                errors.append(f"Missing required field: {chain}_rpc or {chain}_rpc_urls")

        if not _is_http_url(self.get_prometheus_config().get('gateway_url')):
            errors.append("prometheus.gateway_url must be a valid HTTP/HTTPS URL")

        monitor = self.get_monitor_config()
        if not _is_number(monitor.get('poll_interval', DEFAULT_POLL_INTERVAL)) or \
                monitor.get('poll_interval', DEFAULT_POLL_INTERVAL) <= 0:
            errors.append("monitor.poll_interval must be greater than 0")
        retry_times = monitor.get('retry_times', DEFAULT_RETRY_TIMES)
        if isinstance(retry_times, bool) or not isinstance(retry_times, int) or retry_times < 0:
            errors.append("monitor.retry_times must be a non-negative integer")
        if not _is_number(monitor.get('retry_delay', DEFAULT_RETRY_DELAY)) or \
                monitor.get('retry_delay', DEFAULT_RETRY_DELAY) < 0:
            errors.append("monitor.retry_delay must be non-negative")

        # contract overrides are optional, but must be addresses when present
        contracts = self._config_data.get('contracts', {})
        for layer in ('l1', 'l2'):
            for key, value in contracts.get(layer, {}).items():
                if value and not _is_address(value):
                    errors.append(f"contracts.{layer}.{key} must be a valid address (0x...)")

        if self.is_emergency_enabled():
            errors.extend(self.validate_emergency())
        elif self.get_emergency_config().get('private_key'):
            warnings.append("emergency.private_key is set but emergency response is disabled")

        if self.get_push_interval() != self.get_poll_interval():
            warnings.append("prometheus.push_interval differs from monitor.poll_interval; pushes follow the poll cadence")

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
        }

    def validate_emergency(self) -> List[str]:
        errors = []
        emergency = self.get_emergency_config()
        if not emergency.get('private_key'):
            errors.append("emergency.private_key must not be empty")
        elif not _PRIVATE_KEY_RE.match(emergency['private_key']):
            errors.append("emergency.private_key must be 32 bytes of hex")
        for field in ('safe_address', 'argus_address'):
            if not emergency.get(field):
                errors.append(f"emergency.{field} must not be empty")
            elif not _is_address(emergency[field]):
                errors.append(f"emergency.{field} must be a valid address (0x...)")
        amount = str(emergency.get('withdraw_amount') or '')
        if not amount:
            errors.append("emergency.withdraw_amount must not be empty")
        elif not amount.isdigit() or int(amount) <= 0:
            errors.append("emergency.withdraw_amount must be a positive integer (wei)")
        return errors

    def require_valid(self) -> Dict[str, Any]:
        """Raise ConfigError listing every problem if the configuration is invalid"""
        result = self.validate_config()
        if not result["valid"]:
            raise ConfigError("; ".join(result["errors"]))
        return result

    # chain endpoints

    def _get_rpc_urls(self, chain: str) -> List[str]:
        urls = self._config_data.get(f'{chain}_rpc_urls')
        if isinstance(urls, list) and urls:
            return urls
        url = self._config_data.get(f'{chain}_rpc')
        if isinstance(url, str) and url:
            return [url]
        raise ConfigError(f"No {chain} RPC URL(s) configured")

    def get_eth_rpc_urls(self) -> List[str]:
        """Get list of Ethereum RPC URLs in preference order"""
        return self._get_rpc_urls('eth')

    def get_ink_rpc_urls(self) -> List[str]:
        """Get list of INK RPC URLs in preference order"""
        return self._get_rpc_urls('ink')

    def get_rpc_preference_reset_minutes(self) -> int:
        """Get preference reset interval (minutes) for RPC selection (default 60)"""
        try:
            return int(self._config_data.get('rpc_preference_reset_minutes', 60))
        except (TypeError, ValueError):
            return 60

    # sections

    def get_log_config(self) -> Dict[str, Any]:
        return self._config_data.get('log', {})

    def get_prometheus_config(self) -> Dict[str, Any]:
        return self._config_data.get('prometheus', {})

    def get_monitor_config(self) -> Dict[str, Any]:
        return self._config_data.get('monitor', {})

    def get_emergency_config(self) -> Dict[str, Any]:
        return self._config_data.get('emergency', {})

    # monitoring cadence

    def get_poll_interval(self) -> float:
        """Get poll interval in seconds"""
        return self.get_monitor_config().get('poll_interval', DEFAULT_POLL_INTERVAL)

    def get_retry_times(self) -> int:
        return self.get_monitor_config().get('retry_times', DEFAULT_RETRY_TIMES)

    def get_retry_delay(self) -> float:
        """Get retry delay in seconds"""
        return self.get_monitor_config().get('retry_delay', DEFAULT_RETRY_DELAY)

    # metrics gateway

    def get_gateway_url(self) -> str:
        return self.get_prometheus_config().get('gateway_url', '')

    def get_job_name(self) -> str:
        return self.get_prometheus_config().get('job_name') or DEFAULT_JOB_NAME

    def get_push_interval(self) -> int:
        return self.get_prometheus_config().get('push_interval', DEFAULT_PUSH_INTERVAL)

    # contracts

    def get_contract_address(self, layer: str, key: str, default: str) -> str:
        """Get a contract address override, falling back to the built-in default"""
        address = self._config_data.get('contracts', {}).get(layer, {}).get(key)
        return address or default

    # emergency response

    def is_emergency_enabled(self) -> bool:
        return bool(self.get_emergency_config().get('enabled', False))

    def get_withdraw_amount(self) -> int:
        """Get the emergency withdrawal amount in wei"""
        amount = str(self.get_emergency_config().get('withdraw_amount') or '')
        if not amount.isdigit():
            raise ConfigError(f"Cannot parse withdraw amount: {amount!r}")
        return int(amount)
