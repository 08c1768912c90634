# db/session.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def make_engine(db_url: str) -> Engine:
    return create_engine(db_url, connect_args={"check_same_thread": False} if db_url.startswith("sqlite") else {})


def make_session_factory(engine: Engine) -> sessionmaker:
    # objects handed to the HTTP layer outlive their session
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
