from redis import Redis


def redis_connection(url: str) -> Redis:
    return Redis.from_url(url)
