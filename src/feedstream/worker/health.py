from datetime import datetime, timezone

from redis.exceptions import RedisError

from feedstream.main.models import ComponentHealth
from feedstream.redis.connection import get_redis

# Default queue name in arq is "arq:queue", health check key is "{queue_name}:health-check"
ARQ_HEALTH_KEY = "arq:queue:health-check"


async def get_worker_health(redis_client=None) -> ComponentHealth:
    """Check the arq worker through the health check key it refreshes in redis."""
    redis_client = redis_client or get_redis()

    try:
        worker_health_data = await redis_client.get(ARQ_HEALTH_KEY)
    except (RedisError, OSError) as e:
        return ComponentHealth(
            status="UNKNOWN",
            last_heartbeat=None,
            details=f"Redis connection error: {str(e)}",
        )

    if not worker_health_data:
        return ComponentHealth(
            status="UNHEALTHY",
            last_heartbeat=None,
            details="Worker health check key not found or expired",
        )

    if isinstance(worker_health_data, bytes):
        worker_health_data = worker_health_data.decode("utf-8")

    return ComponentHealth(
        status="HEALTHY",
        last_heartbeat=datetime.now(timezone.utc).isoformat(),
        details=worker_health_data,
    )
