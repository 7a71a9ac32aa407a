"""
Shared fixtures: in-memory Intercom and Asana clients and a wired SyncEngine
"""

import pytest

from config import Config
from fakes import PROJECT_FIELDS, FakeAsana, FakeIntercom, make_raw_config
from sync_engine import SyncEngine


@pytest.fixture
def raw_config():
    return make_raw_config()


@pytest.fixture
def cfg(raw_config):
    return Config(raw=raw_config)


@pytest.fixture
def intercom():
    return FakeIntercom()


@pytest.fixture
def asana():
    fake = FakeAsana()
    fake.settings["P1"] = list(PROJECT_FIELDS)
    fake.enum_options["f-gateway"] = [
        {"gid": "opt-bkash", "name": "bKash", "enabled": True},
        {"gid": "opt-nagad", "name": "Nagad", "enabled": True},
    ]
    return fake


@pytest.fixture
def engine(cfg, intercom, asana):
    return SyncEngine(cfg, intercom, asana, max_workers=2)
