# db/init_db.py
from sqlalchemy.engine import Engine

from db.models import Base


def init_db(engine: Engine) -> None:
    """Create the tables if they do not exist. Safe to call on every startup."""
    Base.metadata.create_all(bind=engine)
