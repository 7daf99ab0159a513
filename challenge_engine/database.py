from sqlmodel import SQLModel, Session, create_engine
from .config import DATABASE_URL, DB_ECHO

# SQLAlchemy database engine
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=DB_ECHO, connect_args=connect_args)


def create_db_and_tables():
    # Import the table models so they are registered on SQLModel.metadata
    from .models import challenge, transaction  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
