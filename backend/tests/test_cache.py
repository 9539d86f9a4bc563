import fakeredis
import redis

from services import alerts, ledger
from utils.cache import AlertCache


def test_cached_alerts_survive_json_round_trip(db, make_product, _alert_cache):
    product = make_product(quantity=0, min_stock=5, max_stock=40)

    first = alerts.compute_alerts(db, alerts.OUT_OF_STOCK, use_cache=True)
    # Served from Redis this time
    second = alerts.compute_alerts(db, alerts.OUT_OF_STOCK, use_cache=True)

    assert second == first
    assert second[0].product_id == product.id
    assert second[0].urgency_level is alerts.UrgencyLevel.CRITICAL
    assert any(k.startswith("stock:alerts:") for k in _alert_cache.client.keys())


def test_clear_invalidates_every_worker_sharing_redis():
    server = fakeredis.FakeServer()
    worker_a = AlertCache(fakeredis.FakeRedis(server=server, decode_responses=True), ttl_seconds=30)
    worker_b = AlertCache(fakeredis.FakeRedis(server=server, decode_responses=True), ttl_seconds=30)

    assert worker_b.get_or_compute("low", lambda: ["old"]) == ["old"]
    assert worker_b.get_or_compute("low", lambda: ["new"]) == ["old"]

    worker_a.clear()

    assert worker_b.get_or_compute("low", lambda: ["new"]) == ["new"]


def test_clear_during_compute_does_not_store_stale_value():
    cache = AlertCache(fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True), ttl_seconds=30)

    def compute_then_invalidate():
        cache.clear()
        return ["stale"]

    assert cache.get_or_compute("low", compute_then_invalidate) == ["stale"]
    assert cache.get_or_compute("low", lambda: ["fresh"]) == ["fresh"]


def test_without_redis_nothing_is_cached():
    cache = AlertCache(None, ttl_seconds=30)
    calls = []

    cache.get_or_compute("low", lambda: calls.append(1))
    cache.get_or_compute("low", lambda: calls.append(1))
    cache.clear()

    assert not cache.enabled
    assert len(calls) == 2


def test_redis_outage_falls_through_to_compute(db, make_product, _alert_cache, monkeypatch):
    product = make_product(quantity=20, min_stock=5)

    def unavailable(*args, **kwargs):
        raise redis.ConnectionError("Connection refused")

    monkeypatch.setattr(_alert_cache.client, "get", unavailable)
    monkeypatch.setattr(_alert_cache.client, "incr", unavailable)

    ledger.append(db, product_id=product.id, type="OUT", quantity=17)

    result = alerts.compute_alerts(db, alerts.LOW_STOCK, use_cache=True)
    assert [a.product_id for a in result] == [product.id]
