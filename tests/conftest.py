"""
Shared pytest setup: environment for an isolated in-memory registry.

Environment variables must be set before rtm_service.config is imported.
"""
import os

from cryptography.fernet import Fernet

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CONNECTION_SECRET_KEY"] = Fernet.generate_key().decode()
os.environ["MAX_RETRIES"] = "0"
os.environ["AZURE_DEVOPS_ORG_URL"] = ""
os.environ["AZURE_DEVOPS_PAT"] = ""
os.environ["AZURE_DEVOPS_PROJECT"] = ""

import pytest

from ado_fakes import FakeAzureDevOps


@pytest.fixture
def db_session():
    """Fresh registry tables for each test."""
    from rtm_service.db import Base, SessionLocal, engine, init_db
    
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_ado():
    return FakeAzureDevOps()
