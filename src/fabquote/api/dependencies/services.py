from __future__ import annotations

from fabquote.backoffice.services.file_service import ObjectStore
from fabquote.database import SessionFactory
from fabquote.integrations.conversion_service import ConversionServiceClient


def get_session_factory() -> SessionFactory:
    from fabquote import database

    return database.SessionLocal


def get_object_store() -> ObjectStore:
    return ObjectStore()


def get_conversion_client() -> ConversionServiceClient:
    return ConversionServiceClient()
