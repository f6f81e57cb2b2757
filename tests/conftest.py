"""Shared test fixtures and configuration.

Sets up fake environment variables so crmsync.config doesn't sys.exit(),
and provides common fixtures like a temp DB and a prefilled store.
"""

import os

# Patch env vars BEFORE any crmsync imports
os.environ.setdefault("CRM_API_TOKEN", "fake-token-for-tests")
os.environ.setdefault("CRM_API_URL", "http://crm.test")
os.environ.setdefault("DATABASE_PATH", "data/test-crmsync.db")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("TELEGRAM_CHAT_ID", "")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_prefs.db")


@pytest.fixture
def preference_db(tmp_db_path):
    """Return a PreferenceDB instance backed by a temp file."""
    from crmsync.data.db import PreferenceDB
    return PreferenceDB(db_path=tmp_db_path)


@pytest.fixture
def contact_c1():
    from crmsync.data.models import Contact
    return Contact.model_validate({
        "id": "c1",
        "name": "Dana Levi",
        "email": "dana@example.com",
        "status": "active",
        "tasks": [
            {
                "id": "e1",
                "title": "Send proposal",
                "subtasks": [
                    {"id": "s1", "title": "Draft", "completed": True},
                    {"id": "s2", "title": "Review", "subtasks": [
                        {"id": "s3", "title": "Legal", "completed": True},
                    ]},
                ],
            },
        ],
    })


@pytest.fixture
def store(contact_c1):
    """A CrmStore holding one contact and one global task."""
    from crmsync.core.reconciler import CrmStore
    from crmsync.data.models import Task

    s = CrmStore()
    s.load(
        [contact_c1],
        [Task.model_validate({"id": "t1", "title": "Call back", "contactIds": ["c1"]})],
    )
    return s
