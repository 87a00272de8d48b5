import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def notifications_bed():
    from notifications.domain import notifications

    bed = DomainFixture(notifications)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(notifications_bed):
    from notifications.background import reset_background_tasks
    from notifications.channel import reset_channels
    from notifications.email.queue import set_email_queue

    reset_channels()
    set_email_queue(None)

    with notifications_bed.domain_context():
        yield

        # Let fire-and-forget tasks finish while the domain is still active
        reset_background_tasks()

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()
        current_domain.event_store.store._data_reset()

    reset_channels()
    set_email_queue(None)


@pytest.fixture()
def user_id(request):
    """A user id unique to the running test."""
    return f"user-{request.node.name}"[:200]


# ---------------------------------------------------------------------------
# Redis double
# ---------------------------------------------------------------------------
class InMemoryRedis:
    """Covers the redis-py calls the email queue makes, with decoded responses."""

    def __init__(self, reachable=True):
        self.reachable = reachable
        self.pings = 0
        self.closed = False
        self.strings: dict[str, int] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        # bumped on every write, for WATCH
        self.versions: dict[str, int] = {}

    def _touch(self, key):
        self.versions[key] = self.versions.get(key, 0) + 1

    def ping(self):
        from redis.exceptions import ConnectionError

        self.pings += 1
        if not self.reachable:
            raise ConnectionError("Connection refused")
        return True

    def close(self):
        self.closed = True

    def pipeline(self):
        return _Pipeline(self)

    # strings
    def incr(self, key):
        self._touch(key)
        self.strings[key] = self.strings.get(key, 0) + 1
        return self.strings[key]

    def delete(self, *keys):
        removed = 0
        for key in keys:
            for store in (self.strings, self.hashes, self.zsets):
                if store.pop(key, None) is not None:
                    self._touch(key)
                    removed += 1
        return removed

    # hashes
    def hset(self, key, field=None, value=None, mapping=None):
        self._touch(key)
        h = self.hashes.setdefault(key, {})
        items = dict(mapping or {})
        if field is not None:
            items[field] = value
        for k, v in items.items():
            h[str(k)] = str(v)
        return len(items)

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hincrby(self, key, field, amount=1):
        self._touch(key)
        h = self.hashes.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    # sorted sets
    def _ordered(self, key):
        return sorted(self.zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))

    def zadd(self, key, mapping):
        self._touch(key)
        z = self.zsets.setdefault(key, {})
        for member, score in mapping.items():
            z[str(member)] = float(score)
        return len(mapping)

    def zrem(self, key, *members):
        z = self.zsets.get(key, {})
        removed = sum(1 for m in members if z.pop(str(m), None) is not None)
        if removed:
            self._touch(key)
        return removed

    def zcard(self, key):
        return len(self.zsets.get(key, {}))

    def zrangebyscore(self, key, min_score, max_score):
        return [m for m, s in self._ordered(key) if float(min_score) <= s <= float(max_score)]

    def zrange(self, key, start, end):
        members = [m for m, _ in self._ordered(key)]
        return members[start : end + 1] if end >= 0 else members[start:]


class _Pipeline:
    """Buffers commands until ``execute``. After ``watch`` commands run
    immediately until ``multi``; ``execute`` raises WatchError if a watched
    key was written in between."""

    def __init__(self, client):
        self._client = client
        self._calls = []
        self._watched = {}
        self._immediate = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.reset()

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if self._immediate:
            return getattr(self._client, name)

        def queue(*args, **kwargs):
            self._calls.append((name, args, kwargs))
            return self

        return queue

    def watch(self, *keys):
        self._watched = {key: self._client.versions.get(key, 0) for key in keys}
        self._immediate = True

    def multi(self):
        self._immediate = False

    def reset(self):
        self._calls = []
        self._watched = {}
        self._immediate = False

    def execute(self):
        from redis.exceptions import WatchError

        try:
            if any(self._client.versions.get(key, 0) != version for key, version in self._watched.items()):
                raise WatchError("Watched variable changed.")
            return [getattr(self._client, name)(*args, **kwargs) for name, args, kwargs in self._calls]
        finally:
            self.reset()


@pytest.fixture()
def redis_client():
    return InMemoryRedis()


@pytest.fixture()
def unreachable_redis():
    return InMemoryRedis(reachable=False)
