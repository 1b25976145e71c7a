"""Shared fixtures: deterministic accounts and a fully wired deployment."""

import os
import sys

import pytest
from eth_account import Account

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from calgov.config.loader import CALGovConfig
from calgov.deploy import deploy_cal_governance

# Ten deterministic secp256k1 keys (0x...01 through 0x...0a)
TEST_KEYS = ["0x" + f"{i:064x}" for i in range(1, 11)]


@pytest.fixture
def accounts():
    return [Account.from_key(key) for key in TEST_KEYS]


@pytest.fixture
def owner(accounts):
    return accounts[0].address


@pytest.fixture
def voters(accounts):
    return [a.address for a in accounts[3:6]]


@pytest.fixture
def config():
    return CALGovConfig()


@pytest.fixture
def deployment(owner, config):
    return deploy_cal_governance(owner, config)


@pytest.fixture
def chain(deployment):
    return deployment.chain
