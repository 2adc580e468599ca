from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tests.remote_fakes import FakeClock  # noqa: E402


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def lines() -> List[str]:
    return []


@pytest.fixture()
def sink(lines: List[str]) -> Callable[[str], None]:
    return lines.append


@pytest.fixture()
def redis_config() -> dict:
    return {
        "version": "0.79.1",
        "peer": "10.0.0.5",
        "permanent_peer": True,
        "listen_gossip": "0.0.0.0:9638",
        "ring_key": "prod-ring",
        "services": [
            {
                "name": "core/redis",
                "strategy": "rolling",
                "topology": "leader",
                "channel": "stable",
                "group": "cache",
                "bind": [{"alias": "db", "service": "postgres", "group": "default"}],
                "binds": ["backend:api.prod"],
                "user_toml": "port = 6380\n",
            }
        ],
    }
