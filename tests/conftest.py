import pytest
from fastapi.testclient import TestClient

from querylab.config import Settings
from querylab.database import DatabaseContext
from querylab.main import create_app


class FakeCursor:
    def __init__(self, documents):
        self.documents = list(documents)
        self.calls = []

    def sort(self, spec):
        self.calls.append(("sort", spec))
        return self

    def skip(self, n):
        self.calls.append(("skip", n))
        return self

    def limit(self, n):
        self.calls.append(("limit", n))
        return self

    def max_time_ms(self, ms):
        self.calls.append(("max_time_ms", ms))
        return self

    def __iter__(self):
        limit = dict(self.calls).get("limit")
        return iter(self.documents[:limit] if limit else self.documents)


class FakeCollection:
    def __init__(self, name, documents=None, error=None):
        self.name = name
        self.documents = documents or []
        self.error = error
        self.find_calls = []
        self.aggregate_calls = []
        self.cursor = None

    def find(self, filter=None, projection=None):
        if self.error:
            raise self.error
        self.find_calls.append((filter, projection))
        self.cursor = FakeCursor(self.documents)
        return self.cursor

    def aggregate(self, pipeline, **kwargs):
        if self.error:
            raise self.error
        self.aggregate_calls.append((pipeline, kwargs))
        return iter(list(self.documents))


class FakeDatabase:
    """Stands in for pymongo.database.Database: db[name] -> collection."""

    def __init__(self, documents=None, error=None):
        self.documents = documents or []
        self.error = error
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name, self.documents, self.error)
        return self.collections[name]


@pytest.fixture
def movies():
    return [{"title": f"Movie {i}", "year": 1990 + i} for i in range(30)]


@pytest.fixture
def fake_db(movies):
    return FakeDatabase(movies)


@pytest.fixture
def lab_builds(tmp_path):
    search = tmp_path / "search-lab" / "build"
    sql = tmp_path / "sql-lab" / "build"
    (search / "static").mkdir(parents=True)
    sql.mkdir(parents=True)
    (search / "index.html").write_text("<html>search lab</html>")
    (search / "static" / "app.js").write_text("console.log('search')")
    (sql / "index.html").write_text("<html>sql lab</html>")
    (tmp_path / "secret.txt").write_text("secret")
    return search, sql


@pytest.fixture
def settings(lab_builds):
    search, sql = lab_builds
    return Settings(search_lab_build=search, sql_lab_build=sql)


@pytest.fixture
def client(settings, fake_db):
    app = create_app(settings, DatabaseContext(db=fake_db))
    return TestClient(app)


@pytest.fixture
def disconnected_client(settings):
    app = create_app(settings, DatabaseContext())
    return TestClient(app)
