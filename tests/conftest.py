import os

import pytest


_ENV_PREFIXES = ("ORDERGATE_", "SHOPIFY_")


@pytest.fixture(autouse=True)
def _isolate_ordergate_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
