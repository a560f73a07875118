from __future__ import annotations

import pytest

from fabquote.backoffice.bootstrap import import_all_models
from fabquote.backoffice.events.event_bus import EventBus
from fabquote.backoffice.services.file_service import FileService, ObjectStore
from fabquote.backoffice.storage.local_storage import LocalStorageProvider
from fabquote.config.settings import Settings
from fabquote.database import build_sessionmaker, create_db_engine
from fabquote.models.base import Base


@pytest.fixture()
def engine(tmp_path):
    # file-backed so separate sessions see each other's commits
    engine = create_db_engine(f"sqlite:///{tmp_path / 'backoffice.db'}")
    import_all_models()
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        LOCAL_STORAGE_PATH=str(tmp_path / "storage"),
        LOCAL_STORAGE_PUBLIC_URL_PREFIX="http://files.test",
        CONVERSION_API_URL="http://conversion.test",
        CONVERSION_POLL_INTERVAL_SECONDS=0,
        CONVERSION_POLL_MAX_ATTEMPTS=3,
        CONVERSION_POLL_BUDGET_SECONDS=5,
    )


@pytest.fixture()
def file_service(settings):
    return FileService(LocalStorageProvider(settings))


@pytest.fixture()
def object_store(file_service):
    return ObjectStore(file_service, timeout_s=5)


@pytest.fixture()
def bus():
    return EventBus()
