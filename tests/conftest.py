import logging
import sys
from pathlib import Path

root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

import pytest

import asset_size_diff

HASH_A = "0123456789abcdef0123456789abcdef"
HASH_B = "fedcba9876543210fedcba9876543210"


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger("asset_size_diff")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture()
def fake_run(monkeypatch):
    """Replace process execution with a recorder; outcomes keyed by command prefix."""
    calls = []
    outcomes = {}

    def _run(cmd, cwd=None):
        calls.append((list(cmd), cwd))
        for prefix, result in outcomes.items():
            if tuple(cmd[: len(prefix)]) == prefix:
                return result
        return asset_size_diff.CommandResult(0, "", "")

    monkeypatch.setattr(asset_size_diff, "run", _run)
    _run.calls = calls
    _run.outcomes = outcomes
    return _run
