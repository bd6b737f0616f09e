"""
Fixtures compartilhadas: banco SQLite em memória e cliente HTTP da API
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from pipeline_goals.database import get_session
from pipeline_goals.main import app


@pytest.fixture
def engine():
    """Engine SQLite em memória compartilhada entre threads"""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(engine):
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def client(engine):
    """Cliente da API com a sessão de banco substituída"""

    def override_get_session():
        with Session(engine) as db_session:
            yield db_session

    app.dependency_overrides[get_session] = override_get_session
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-Id": "1"}


@pytest.fixture
def other_user_headers():
    return {"X-User-Id": "2"}
