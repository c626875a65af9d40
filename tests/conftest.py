"""Shared fixtures: keep the developer's environment out of settings."""

import os

import pytest

_PLAIN_ENV_VARS = (
    "MONDAY_API_TOKEN",
    "MONDAY_SIGNING_SECRET",
    "STATUS_COLUMN_ID",
    "PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.upper().startswith("FORMULA_TRIGGER_") or name in _PLAIN_ENV_VARS:
            monkeypatch.delenv(name, raising=False)
    # No stray .env or formula_trigger.yaml from the working directory
    monkeypatch.chdir(tmp_path)
