import os
import sys
import pathlib
import tempfile
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure backend root (containing 'watch_progress' package) is on sys.path
BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Keep writable data (sqlite file, cache dir) out of the working tree
os.environ.setdefault('WATCH_PROGRESS_DATA_DIR', tempfile.mkdtemp(prefix='watch-progress-tests-'))

from watch_progress.main import app
from watch_progress.db.session import Base, get_db
from watch_progress.models import progress as _progress_models  # noqa: F401


@pytest.fixture
def db_session():
    """Isolated in-memory database shared across threads for one test."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(db_session):
    """Test client with real app and the test database."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
