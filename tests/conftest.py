import os
import tempfile

# Point the app at a throwaway SQLite file before anything imports fenceops
_DB_DIR = tempfile.mkdtemp(prefix="fenceops-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'fenceops-test.db')}"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from fenceops import models  # noqa: E402, F401
from fenceops.database import Base, SessionLocal, engine  # noqa: E402
from fenceops.seed import seed_reference_data  # noqa: E402

TENANT = "acme-fence"
OTHER_TENANT = "other-fence"

# Dallas Main service center; ZIP 75201 prices in the Dallas-Fort Worth zone
DALLAS = (32.7767, -96.7970)


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    """Tenant with the default reference data; the session holds no open transaction"""
    seed_reference_data(db, TENANT)
    db.commit()
    return TENANT


@pytest.fixture
def client():
    from fenceops.main import app

    return TestClient(app)


@pytest.fixture
def headers():
    return {"X-Tenant-ID": TENANT}


class NoGeocoder:
    """Stands in for the network geocoder: never places an address"""

    def __init__(self):
        self.calls = []

    def geocode(self, zip_code=None, address=None, city=None, state=None):
        self.calls.append((zip_code, address, city, state))
        return None


class FixedGeocoder(NoGeocoder):
    def __init__(self, coords):
        super().__init__()
        self.coords = coords

    def geocode(self, zip_code=None, address=None, city=None, state=None):
        super().geocode(zip_code, address, city, state)
        return self.coords
