import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.realpath(__file__))))


@pytest.fixture(autouse=True)
def clean_tf_vars(monkeypatch):
    """Keep TF_VAR_* from the developer's shell out of settings resolution."""
    for key in list(os.environ):
        if key.startswith("TF_VAR_"):
            monkeypatch.delenv(key, raising=False)
