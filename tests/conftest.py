import pytest_asyncio

from liteflow import Liteflow


@pytest_asyncio.fixture
async def tracker(tmp_path):
    """Tracker on a fresh SQLite file.

    The batch delay is long so that tests decide when buffered steps are
    flushed.
    """
    lf = Liteflow(str(tmp_path / "liteflow.db"), batch_delay=30)
    await lf.init()
    yield lf
    await lf.destroy()
