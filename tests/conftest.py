import pytest

from newsdesk.storage.database import Database


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "newsdesk.db"))
    yield database
    database.close()
