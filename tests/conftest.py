"""Root pytest configuration for all tests.

Shared fixtures build an engine container over a temporary folder and an
in-memory remote store.
"""

from pathlib import Path

import pytest

from cms_mirror.mirror.container import Container
from cms_mirror.mirror.layout import ObjectLayout
from cms_mirror.mirror.metadata_store import MetadataStore
from tests.fixtures.fake_remote import FakeRemoteStore


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore(first_id=123)


@pytest.fixture
def container_root(tmp_path: Path) -> Path:
    return tmp_path / "__root"


@pytest.fixture
def layout(container_root: Path) -> ObjectLayout:
    return ObjectLayout(container_root)


@pytest.fixture
def store(layout: ObjectLayout) -> MetadataStore:
    metadata_store = MetadataStore(layout.metadata_dir)
    metadata_store.load()
    return metadata_store


@pytest.fixture
def container(container_root: Path, remote: FakeRemoteStore) -> Container:
    return Container("main", container_root, remote).load()
