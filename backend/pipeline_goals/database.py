from sqlmodel import SQLModel, create_engine, Session
from pipeline_goals.config import settings

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, echo=settings.sql_echo, connect_args=connect_args)


def get_session():
    """Dependency for getting database session"""
    with Session(engine) as session:
        yield session


def init_db():
    """Initialize database tables"""
    # Importar os modelos garante que as tabelas estejam registradas no metadata
    from pipeline_goals import models  # noqa: F401
    SQLModel.metadata.create_all(engine)
