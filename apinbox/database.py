from typing import Any

from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from apinbox.config import DB_PATH
from apinbox.config import DEBUG
from apinbox.config import SQLALCHEMY_DATABASE_URL

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 15}
)
SessionLocal = sessionmaker(autoflush=False, bind=engine)

DATABASE_URL = f"sqlite+aiosqlite:///{DB_PATH}"
async_engine = create_async_engine(
    DATABASE_URL, future=True, echo=DEBUG, connect_args={"timeout": 15}
)
async_session = sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

Base: Any = declarative_base()


# The "insert if absent" helpers rely on SAVEPOINT, which requires the driver
# to leave the transaction handling to SQLAlchemy
@event.listens_for(async_engine.sync_engine, "connect")
def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.isolation_level = None


@event.listens_for(async_engine.sync_engine, "begin")
def _begin(conn: Any) -> None:
    conn.exec_driver_sql("BEGIN")
