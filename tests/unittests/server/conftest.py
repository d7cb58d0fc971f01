from unittest.mock import AsyncMock

import httpx
import pytest
from dependency_injector import providers

from feedstream.feeds.infrastructure.metrics_client import NullMetricsClient
from feedstream.main.container.container import Container
from feedstream.server.dependencies.container import get_container
from feedstream.server.main import get_application


@pytest.fixture
def fetcher():
    return AsyncMock()


@pytest.fixture
def job_manager():
    manager = AsyncMock()
    manager.enqueue_refresh.return_value = True
    return manager


@pytest.fixture
def container(settings, db, fake_redis, fetcher, job_manager):
    container = Container()
    container.session_scope.override(providers.Object(db.transaction))
    container.redis_client.override(providers.Object(fake_redis))
    container.job_manager.override(providers.Object(job_manager))
    container.feed_fetcher.override(providers.Object(fetcher))
    container.metrics_client.override(providers.Object(NullMetricsClient()))
    return container


@pytest.fixture
def app(container):
    app = get_application(with_lifespan=False)
    app.dependency_overrides[get_container] = lambda: container
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
