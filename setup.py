#!/usr/bin/env python3
"""
Setup script for INK/Ethereum Contract Monitor
"""

from setuptools import setup

setup(
    name="ink-eth-monitor",
    version="1.0.0",
    description="Safety monitor and emergency withdrawal bot for INK and Ethereum contracts",
    author="Ink Monitor Contributors",
    package_dir={"": "src"},
    py_modules=[
        "chain_errors",
        "config_manager",
        "contract_accounts",
        "contract_caller",
        "contract_monitor",
        "emergency_manager",
        "ink_eth_monitor",
        "logger_utils",
        "metrics_sink",
        "retry_helper",
        "rpc_failover",
        "safe_delegate",
    ],
    install_requires=[
        "web3>=6.0.0,<7.0.0",
        "requests>=2.28.0",
        "eth-abi>=4.0.0,<5.0.0",
        "python-dotenv>=1.0.0",
        "prometheus-client>=0.17.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ink-eth-monitor=ink_eth_monitor:main",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
