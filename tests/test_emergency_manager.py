"""Tests for alert evaluation and the one-shot emergency withdrawal gate."""

import threading
import time

import pytest

from chain_errors import ConfigError, SubmissionError
from config_manager import ConfigManager
from emergency_manager import EmergencyManager, EmergencyState, evaluate_alert

SPREAD = "ink_eth_monitor_oracle_price_spread"
SUPPLY = "ink_eth_monitor_remaining_supply"
SUPERCHAIN = "ink_eth_monitor_superchain_paused"

SAFE = "0x00000000000000000000000000000000000000a1"
ARGUS = "0x00000000000000000000000000000000000000a2"
KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


class FakeDelegate:
    def __init__(self, fail_times=0, delay=0.0):
        self.intents = []
        self.fail_times = fail_times
        self.delay = delay

    def withdraw_eth_from_gateway(self, intent):
        if self.delay:
            time.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise SubmissionError("submit", "nonce too low")
        self.intents.append(intent)
        return f"0x{len(self.intents):064x}"


@pytest.fixture
def delegate():
    return FakeDelegate()


@pytest.fixture
def manager(delegate):
    return EmergencyManager(enabled=True, delegate=delegate, withdraw_amount=10 ** 18)


# ─── Rule table ───

@pytest.mark.parametrize("name,value,fires", [
    (SPREAD, 0.05, False),
    (SPREAD, 0.0500001, True),
    (SUPPLY, 2500, False),
    (SUPPLY, 2499.99, True),
    (SUPPLY, -2.0, True),
    (SUPERCHAIN, 1.0, True),
    (SUPERCHAIN, 0.0, False),
    ("ink_eth_monitor_tydro_pool_paused", 1.0, True),
    ("monitor_ink_new_vault", 1.0, False),
])
def test_evaluate_alert(name, value, fires):
    assert (evaluate_alert(name, value) is not None) == fires


def test_spread_reason_reports_percentage():
    assert "7.00%" in evaluate_alert(SPREAD, 0.07)


# ─── Trigger gate ───

def test_first_alert_submits_once(manager, delegate):
    tx_hash = manager.check_alert(SUPERCHAIN, 1.0)

    assert tx_hash == f"0x{1:064x}"
    assert len(delegate.intents) == 1
    assert delegate.intents[0].amount == 10 ** 18
    assert "SuperChain" in delegate.intents[0].reason
    assert manager.state is EmergencyState.TRIGGERED


def test_second_alert_is_skipped(manager, delegate, caplog):
    manager.check_alert(SUPERCHAIN, 1.0)
    with caplog.at_level("WARNING"):
        assert manager.check_alert(SUPPLY, 10.0) is None

    assert len(delegate.intents) == 1
    assert "already triggered" in caplog.text


def test_non_alert_value_does_not_submit(manager, delegate):
    assert manager.check_alert(SPREAD, 0.01) is None
    assert delegate.intents == []
    assert manager.state is EmergencyState.ARMED


def test_failed_submission_stays_armed_and_retries():
    delegate = FakeDelegate(fail_times=1)
    manager = EmergencyManager(enabled=True, delegate=delegate, withdraw_amount=1)

    with pytest.raises(SubmissionError):
        manager.check_alert(SUPERCHAIN, 1.0)
    assert manager.state is EmergencyState.ARMED

    assert manager.check_alert(SUPERCHAIN, 1.0) is not None
    assert manager.is_triggered()


def test_unexpected_delegate_error_is_wrapped():
    class Broken:
        def withdraw_eth_from_gateway(self, intent):
            raise RuntimeError("boom")

    manager = EmergencyManager(enabled=True, delegate=Broken(), withdraw_amount=1)
    with pytest.raises(SubmissionError) as exc_info:
        manager.check_alert(SUPERCHAIN, 1.0)
    assert exc_info.value.stage == "withdraw"
    assert not manager.is_triggered()


def test_concurrent_alerts_submit_once():
    delegate = FakeDelegate(delay=0.05)
    manager = EmergencyManager(enabled=True, delegate=delegate, withdraw_amount=1)
    results = []

    def fire():
        results.append(manager.check_alert(SUPERCHAIN, 1.0))

    threads = [threading.Thread(target=fire) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(delegate.intents) == 1
    assert len([r for r in results if r is not None]) == 1


def test_disabled_manager_ignores_alerts():
    manager = EmergencyManager(enabled=False)
    assert manager.check_alert(SUPERCHAIN, 1.0) is None
    assert manager.state is EmergencyState.DISARMED
    assert not manager.is_triggered()


def test_reset_rearms(manager, delegate):
    manager.check_alert(SUPERCHAIN, 1.0)
    manager.reset()
    assert manager.state is EmergencyState.ARMED
    manager.check_alert(SUPERCHAIN, 1.0)
    assert len(delegate.intents) == 2


# ─── Construction ───

def test_enabled_without_delegate_is_config_error():
    with pytest.raises(ConfigError):
        EmergencyManager(enabled=True, delegate=None, withdraw_amount=1)


def test_enabled_with_zero_amount_is_config_error(delegate):
    with pytest.raises(ConfigError):
        EmergencyManager(enabled=True, delegate=delegate, withdraw_amount=0)


def test_from_config_disabled_never_builds_delegate():
    def factory(section):
        raise AssertionError("delegate must not be built")

    manager = EmergencyManager.from_config(ConfigManager(config_data={}), factory)
    assert manager.state is EmergencyState.DISARMED


def test_from_config_enabled(delegate):
    config = ConfigManager(config_data={"emergency": {
        "enabled": True,
        "private_key": KEY,
        "safe_address": SAFE,
        "argus_address": ARGUS,
        "withdraw_amount": "2500000000000000000",
    }})
    seen = []

    def factory(section):
        seen.append(section)
        return delegate

    manager = EmergencyManager.from_config(config, factory)
    assert manager.withdraw_amount == 2_500_000_000_000_000_000
    assert seen[0]["safe_address"] == SAFE
    assert manager.state is EmergencyState.ARMED


def test_from_config_enabled_with_missing_fields():
    config = ConfigManager(config_data={"emergency": {"enabled": True, "private_key": KEY}})
    with pytest.raises(ConfigError) as exc_info:
        EmergencyManager.from_config(config, lambda section: FakeDelegate())
    assert "safe_address" in str(exc_info.value)
    assert "withdraw_amount" in str(exc_info.value)
