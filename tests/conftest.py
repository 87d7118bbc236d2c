"""Pytest configuration and fixtures for Member Node tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

import pytest

from membernode.adapter import MemberNodeAdapter, build_adapter
from membernode.config import (
    MEMBERNODE_CONFIG_PATH_ENV,
    MEMBERNODE_DATA_REPO_PATH_ENV,
    MEMBERNODE_NODE_ID_ENV,
    MEMBERNODE_SCOPE_NAME_ENV,
    MEMBERNODE_STORAGE_CAPACITY_ENV,
    MemberNodeConfig,
)
from membernode.identifiers import LocalDoiMinter
from membernode.repository import InMemoryDataRepository
from membernode.repository.tracing import MEMBERNODE_OTEL_ENABLED_ENV
from tests.fixtures.member_node import make_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep deployment environment variables from leaking into tests.

    Tests that need an override set it explicitly.
    """
    for name in (
        MEMBERNODE_CONFIG_PATH_ENV,
        MEMBERNODE_DATA_REPO_PATH_ENV,
        MEMBERNODE_NODE_ID_ENV,
        MEMBERNODE_SCOPE_NAME_ENV,
        MEMBERNODE_STORAGE_CAPACITY_ENV,
        MEMBERNODE_OTEL_ENABLED_ENV,
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> MemberNodeConfig:
    """Configuration of the test node (memory backend, GBIF scope)."""
    return make_config()


@pytest.fixture
def repository() -> InMemoryDataRepository:
    return InMemoryDataRepository()


@pytest.fixture
def adapter(config: MemberNodeConfig, repository: InMemoryDataRepository) -> MemberNodeAdapter:
    """Adapter over a fresh in-memory repository with local DOI minting."""
    return build_adapter(config, repository=repository, doi_service=LocalDoiMinter("10.5072"))
