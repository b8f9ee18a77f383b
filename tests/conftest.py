import os

# keep test runs from writing error.log into the working directory
os.environ.setdefault("GRPCEXPLORER_LOG_FILE", "")

import pytest
import pytest_asyncio
import testprotos
from reflectionserver import ReflectionTestServer
from grpcexplorer.SchemaRegistry import SchemaRegistry


@pytest_asyncio.fixture
async def make_server():
    started = []

    async def factory(**kwargs):
        server = await ReflectionTestServer(**kwargs).start()
        started.append(server)
        return server

    yield factory
    for server in started:
        await server.stop()


@pytest_asyncio.fixture
async def server(make_server):
    return await make_server()


@pytest.fixture
def registry():
    schema = SchemaRegistry()
    for fd in testprotos.all_files():
        schema.merge_file(fd)
    return schema
