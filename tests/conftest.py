import os

import pytest

os.environ.setdefault("ENV", "test")

import app.models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
from app.db.session import make_engine, make_session_factory  # noqa: E402
from app.services.ledger import MigrationLedger  # noqa: E402
from tests.utils import FakeStorage  # noqa: E402


@pytest.fixture
def ledger(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    return MigrationLedger(make_session_factory(engine))


@pytest.fixture
def storage():
    return FakeStorage()
