import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "HEARTHGATE_DATABASE_URL",
        "HEARTHGATE_REWARD_SEED",
        "HEARTHGATE_CONFLICT_RETRIES",
        "HEARTHGATE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
