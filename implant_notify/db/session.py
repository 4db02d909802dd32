from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from implant_notify.core.config import settings

connect_args = {}
if make_url(settings.DATABASE_URL).get_backend_name() == "sqlite":
    # The scheduler task and request handlers may share the engine across threads.
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL, pool_pre_ping=True, connect_args=connect_args
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
