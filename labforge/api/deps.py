from __future__ import annotations

from collections.abc import Generator

import redis

from labforge.catalog.registry import Catalog
from labforge.catalog.singleton import get_catalog
from labforge.infra.redis_client import create_redis


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def catalog_dep() -> Catalog:
    return get_catalog()
