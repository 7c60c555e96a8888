#!/usr/bin/env python3
"""
Emergency response manager

Evaluates each metric against a static rule table and, on the first
qualifying alert, withdraws through the Safe delegate. The trigger gate is
held under a lock for the whole check-submit-set sequence, so at most one
withdrawal is submitted per process. A failed submission leaves the manager
armed; a later alert retries.
"""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from chain_errors import ConfigError, SubmissionError
from safe_delegate import WithdrawalIntent

logger = logging.getLogger(__name__)

PRICE_SPREAD_THRESHOLD = 0.05
REMAINING_SUPPLY_THRESHOLD = 2500

# metric name -> (predicate, reason builder)
ALERT_RULES: Dict[str, Tuple[Callable[[float], bool], Callable[[float], str]]] = {
    "ink_eth_monitor_superchain_paused": (
        lambda v: v == 1.0, lambda v: "SuperChain config is paused"),
    "ink_eth_monitor_optimism_portal_paused": (
        lambda v: v == 1.0, lambda v: "Optimism Portal is paused"),
    "ink_eth_monitor_standard_bridge_paused": (
        lambda v: v == 1.0, lambda v: "Standard Bridge is paused"),
    "ink_eth_monitor_tydro_pool_paused": (
        lambda v: v == 1.0, lambda v: "Tydro pool is paused"),
    "ink_eth_monitor_oracle_price_spread": (
        lambda v: v > PRICE_SPREAD_THRESHOLD,
        lambda v: f"Oracle price spread too large: {v * 100:.2f}% (limit 5%)"),
    "ink_eth_monitor_remaining_supply": (
        lambda v: v < REMAINING_SUPPLY_THRESHOLD,
        lambda v: f"Remaining supply too low: {v:.2f} tokens (limit 2500)"),
}


class EmergencyState(str, Enum):
    DISARMED = "disarmed"
    ARMED = "armed"
    TRIGGERED = "triggered"


def evaluate_alert(metric_name: str, value: float) -> Optional[str]:
    """Return the alert reason if the rule for metric_name is satisfied"""
    rule = ALERT_RULES.get(metric_name)
    if rule is None:
        return None
    predicate, reason = rule
    return reason(value) if predicate(value) else None


class EmergencyManager:
    def __init__(self, enabled: bool, delegate=None, withdraw_amount: int = 0):
        if enabled and delegate is None:
            raise ConfigError("Emergency response enabled without a delegate")
        if enabled and withdraw_amount <= 0:
            raise ConfigError("Emergency withdraw amount must be positive")

        self.enabled = enabled
        self.delegate = delegate
        self.withdraw_amount = withdraw_amount
        self.triggered = False
        self.last_trigger_time: Optional[datetime] = None
        self._lock = threading.Lock()

        if enabled:
            logger.info(f"Emergency response armed (withdraw amount {withdraw_amount} wei)")
        else:
            logger.info("Emergency response disabled")

    @classmethod
    def from_config(cls, config_manager, delegate_factory: Callable[[Dict], object]) -> "EmergencyManager":
        """Validate emergency settings and build the delegate only when enabled"""
        if not config_manager.is_emergency_enabled():
            return cls(enabled=False)

        errors = config_manager.validate_emergency()
        if errors:
            raise ConfigError("Invalid emergency config: " + "; ".join(errors))

        emergency = config_manager.get_emergency_config()
        return cls(
            enabled=True,
            delegate=delegate_factory(emergency),
            withdraw_amount=config_manager.get_withdraw_amount(),
        )

    @property
    def state(self) -> EmergencyState:
        if not self.enabled:
            return EmergencyState.DISARMED
        with self._lock:
            return EmergencyState.TRIGGERED if self.triggered else EmergencyState.ARMED

    def is_triggered(self) -> bool:
        with self._lock:
            return self.triggered

    def check_alert(self, metric_name: str, value: float) -> Optional[str]:
        """Trigger the withdrawal if value trips the rule for metric_name

        Returns the transaction hash of a fresh submission, else None.
        Raises SubmissionError if the withdrawal could not be submitted.
        """
        if not self.enabled:
            return None

        reason = evaluate_alert(metric_name, value)
        if reason is None:
            return None
        return self._execute_emergency_withdraw(reason)

    def _execute_emergency_withdraw(self, reason: str) -> Optional[str]:
        with self._lock:
            if self.triggered:
                logger.warning(
                    f"Emergency response already triggered at {self.last_trigger_time}, skipping: {reason}"
                )
                return None

            logger.warning(f"🚨 Emergency response triggered: {reason} (amount {self.withdraw_amount} wei)")
            intent = WithdrawalIntent(amount=self.withdraw_amount, reason=reason)

            try:
                tx_hash = self.delegate.withdraw_eth_from_gateway(intent)
            except SubmissionError as e:
                logger.error(f"Emergency withdrawal failed, staying armed: {e}")
                raise
            except Exception as e:
                logger.error(f"Emergency withdrawal failed, staying armed: {e}")
                raise SubmissionError("withdraw", str(e)) from e

            self.triggered = True
            self.last_trigger_time = datetime.now(timezone.utc)

        logger.info(f"✅ Emergency withdrawal submitted: {tx_hash} ({reason})")
        return tx_hash

    def reset(self) -> None:
        """Administrative reset of the trigger state; never called by the poll loop"""
        with self._lock:
            self.triggered = False
            self.last_trigger_time = None
        logger.info("Emergency response state reset")

    def close(self) -> None:
        logger.info("Closing emergency response manager")
