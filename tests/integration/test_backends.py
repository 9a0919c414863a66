import os
import uuid

import pytest
import pytest_asyncio

from liteflow import Liteflow, LiteflowError

BACKENDS = {
    "postgres": {
        "client": "postgres",
        "host": os.getenv("TEST_PG_HOST", "localhost"),
        "port": int(os.getenv("TEST_PG_PORT", "5432")),
        "user": os.getenv("TEST_PG_USER", "postgres"),
        "password": os.getenv("TEST_PG_PASSWORD", "postgres"),
        "database": os.getenv("TEST_PG_DATABASE", "postgres"),
    },
    "mysql": {
        "client": "mysql",
        "host": os.getenv("TEST_MYSQL_HOST", "localhost"),
        "port": int(os.getenv("TEST_MYSQL_PORT", "3306")),
        "user": os.getenv("TEST_MYSQL_USER", "root"),
        "password": os.getenv("TEST_MYSQL_PASSWORD", "root"),
        "database": os.getenv("TEST_MYSQL_DATABASE", "liteflow"),
    },
}


@pytest_asyncio.fixture(params=sorted(BACKENDS))
async def backend(request):
    lf = Liteflow(BACKENDS[request.param], batch_delay=30, operation_timeout=10)
    try:
        await lf.init()
    except LiteflowError:
        await lf.destroy()
        pytest.skip(f"{request.param} server not available")
    await lf.delete_all_workflows()
    yield lf
    await lf.delete_all_workflows()
    await lf.destroy()


@pytest.mark.asyncio
async def test_lifecycle_round_trip(backend):
    tag = str(uuid.uuid4())
    handle = await backend.start_workflow("order", [{"key": "run", "value": tag}])
    await handle.add_step("a", {"n": 1})
    await handle.add_step("b")
    assert await backend.flush_batch_inserts() == 2
    await handle.complete()
    await backend.drain()

    wf = await backend.get_workflow_by_identifier("run", tag)
    assert wf.id == handle.id
    assert wf.status == "completed"
    assert [(s.step, s.data) for s in await handle.get_steps()] == [("a", {"n": 1}), ("b", None)]

    assert await backend.attach_identifier("run", tag, {"key": "alias", "value": tag}) is True
    assert await backend.attach_identifier("run", tag, {"key": "alias", "value": tag}) is False
    assert (await backend.get_workflow_by_identifier("alias", tag)).id == handle.id


@pytest.mark.asyncio
async def test_queries_and_stats(backend):
    first = await backend.start_workflow("sync-one", [{"key": "team", "value": "x"}])
    await first.add_steps([{"step": "pull"}, {"step": "push"}])
    await first.complete()
    second = await backend.start_workflow("other", [{"key": "team", "value": "y"}])
    await second.add_steps([{"step": "pull"}])
    await backend.drain()

    by_identifier = await backend.get_workflows(identifier={"key": "team", "value": "x"})
    assert [wf.id for wf in by_identifier.workflows] == [first.id]

    by_step = await backend.get_workflows(step="push")
    assert [wf.id for wf in by_step.workflows] == [first.id]

    by_name = await backend.get_workflows(name="sync")
    assert by_name.total == 1

    stats = await backend.get_workflow_stats()
    assert (stats.total, stats.completed, stats.pending, stats.avg_steps) == (2, 1, 1, 1.5)

    top = await backend.get_most_frequent_steps(1)
    assert [(f.step, f.count) for f in top] == [("pull", 2)]

    steps = await backend.get_steps_by_identifier("team", "x")
    assert [s.step for s in steps] == ["pull", "push"]
