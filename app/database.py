from sqlmodel import Session, SQLModel, create_engine

from app.core.config import settings


connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # sessions are handed between FastAPI's threadpool workers
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)


def create_db_and_tables():
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
