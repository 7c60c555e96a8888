#!/usr/bin/env python3
"""
Error types shared by the monitor components.

RpcError is the only retryable failure. DecodeError means the contract
answered with a shape we did not expect and should reach an operator rather
than be retried. SubmissionError aborts one emergency attempt and leaves the
emergency manager armed.
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for all monitor errors"""


class RpcError(MonitorError):
    """Transport or node failure while talking to a chain"""


class DecodeError(MonitorError):
    SHORT_BUFFER = "ShortBuffer"
    ZERO_REFERENCE = "ZeroReference"
    NEGATIVE_REFERENCE = "NegativeReference"

    def __init__(self, reason: str, message: str, length: Optional[int] = None):
        super().__init__(f"{reason}: {message}")
        self.reason = reason
        self.length = length


class ConfigError(MonitorError):
    """Missing or invalid configuration"""


class SubmissionError(MonitorError):
    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage


class RetryExhaustedError(MonitorError):
    def __init__(self, attempts: int, max_retries: int, last_error: BaseException):
        super().__init__(f"still failing after {max_retries} retries ({attempts} attempts): {last_error}")
        self.attempts = attempts
        self.max_retries = max_retries
        self.last_error = last_error


class RetryCancelledError(MonitorError):
    def __init__(self, attempts: int):
        super().__init__(f"cancelled after {attempts} attempts")
        self.attempts = attempts
