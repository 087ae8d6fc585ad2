from pathlib import Path

import pytest

from zamm import config as config_module
from zamm.config import Settings
from zamm.services.link_service import LinkService
from zamm.services.node_service import NodeService
from zamm.services.organizer import PathOrganizer
from zamm.services.storage import FileStorage


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(storage_path=tmp_path / ".zamm", anthropic_api_key=None)


@pytest.fixture
def storage(settings: Settings) -> FileStorage:
    return FileStorage(settings)


@pytest.fixture
def nodes(storage: FileStorage) -> NodeService:
    return NodeService(storage)


@pytest.fixture
def links(storage: FileStorage) -> LinkService:
    return LinkService(storage)


@pytest.fixture
def organizer(nodes: NodeService, settings: Settings) -> PathOrganizer:
    return PathOrganizer(nodes, settings)


@pytest.fixture(autouse=True)
def restore_settings_cache():
    """
    Ensure cached settings never leak between tests.
    """
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()
