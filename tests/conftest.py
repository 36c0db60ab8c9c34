"""
Test configuration and fixtures for GitLab KB Refresh.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gitlab_kb_refresh.core.encryption import CredentialVault


@pytest.fixture(scope="session")
def vault():
    """Credential vault with a test passphrase (key derivation runs once)."""
    return CredentialVault("test-passphrase")


@pytest.fixture
def mock_redis_client():
    """Mock Redis async client, including MULTI/EXEC pipelines."""
    client = AsyncMock()
    client.ping.return_value = True
    client.get.return_value = None
    client.set.return_value = True
    client.hset.return_value = 1
    client.hgetall.return_value = {}
    client.smembers.return_value = set()
    client.delete.return_value = 1

    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    pipeline_cm = MagicMock()
    pipeline_cm.__aenter__ = AsyncMock(return_value=pipe)
    pipeline_cm.__aexit__ = AsyncMock(return_value=False)
    client.pipeline = MagicMock(return_value=pipeline_cm)
    client.pipe = pipe
    return client


@pytest.fixture
def asciidoc_page():
    """A small Antora page exercising most conversion passes."""
    return "\n".join(
        [
            "= Create a Validator",
            "",
            "This guide shows how to ``create`` a validator.",
            "",
            "== Prerequisites",
            "",
            "NOTE: You need admin rights.",
            "",
            "[source,yaml]",
            "----",
            "validator:",
            "  name: demo",
            "----",
            "",
            "See xref:overview.adoc[the overview] and https://example.com/docs[the docs].",
            "",
        ]
    )


@pytest.fixture
def test_client():
    """FastAPI test client (lifespan not started, so no Docket registration)."""
    from fastapi.testclient import TestClient

    from gitlab_kb_refresh.api.app import app

    return TestClient(app)
