import os
from typing import Generator

os.environ.setdefault("APINBOX_CONFIG_FILE", "tests.toml")

import pytest  # noqa: E402

from apinbox.database import Base  # noqa: E402
from apinbox.database import async_engine  # noqa: E402
from apinbox.database import async_session  # noqa: E402
from apinbox.database import engine  # noqa: E402
from apinbox.log import configure_logging  # noqa: E402
from tests.factories import _Session  # noqa: E402

configure_logging()


@pytest.fixture
def db() -> Generator:
    Base.metadata.create_all(bind=engine)
    try:
        yield _Session
    finally:
        _Session.remove()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
async def async_db_session(db):
    async with async_session() as session:
        yield session
    await async_engine.dispose()
