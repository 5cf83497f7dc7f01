import pytest
from pydantic import ValidationError

from bakery_orders.config.settings import Settings


def test_rate_limit_strategy_is_normalized():
    assert Settings(RATE_LIMIT_STRATEGY=" Redis ").RATE_LIMIT_STRATEGY == "redis"


def test_unknown_rate_limit_strategy_is_rejected():
    with pytest.raises(ValidationError):
        Settings(RATE_LIMIT_STRATEGY="memcached")


def test_blank_redis_url_means_no_redis():
    assert Settings(REDIS_URL="   ").REDIS_URL is None
    assert Settings(REDIS_URL=" redis://cache:6379/0 ").REDIS_URL == "redis://cache:6379/0"
