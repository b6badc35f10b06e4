from app import main


class PingableRedis:
    def ping(self):
        return True


class UnreachableRedis:
    def ping(self):
        raise ConnectionError("Connection refused")


def test_health_reports_components(client, monkeypatch):
    monkeypatch.setattr(main, "get_redis_client", lambda: PingableRedis())

    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["database"] == {"connected": True}
    assert body["redis"]["connected"] is True


def test_health_is_degraded_without_redis(client, monkeypatch):
    monkeypatch.setattr(main, "get_redis_client", lambda: UnreachableRedis())

    body = client.get("/health").json()

    assert body["status"] == "degraded"
    assert body["redis"] == {"connected": False, "error": "Connection refused"}
