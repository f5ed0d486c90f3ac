from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fakes import SAGAR_URL, FakeCollection, StubStrategy, found, no_sleep
from listing_resolver.routers import health
from listing_resolver.routers.health import router as health_router
from listing_resolver.routers.listings import router as listings_router
from listing_resolver.routers.stores import get_store_service, router as stores_router
from listing_resolver.scraper.resolver import ListingResolver
from listing_resolver.services.store_service import StoreService


def _build_app(resolver: ListingResolver | None) -> FastAPI:
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(listings_router)
    app.include_router(stores_router)
    app.state.listing_resolver = resolver
    return app


@pytest.fixture
def resolver() -> ListingResolver:
    return ListingResolver([StubStrategy("fast", found("Joe's Cafe"))], sleep=no_sleep)


def test_listing_details_returns_public_fields(resolver: ListingResolver) -> None:
    client = TestClient(_build_app(resolver))

    response = client.get("/listings/details", params={"url": "https://maps.example/joes"})

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Joe's Cafe"
    assert body["address"] == "12 Main St, Springfield"
    assert body["rating"] == "4.3"


def test_listing_details_rejects_missing_and_blank_url(resolver: ListingResolver) -> None:
    client = TestClient(_build_app(resolver))

    assert client.get("/listings/details").status_code == 422
    assert client.get("/listings/details", params={"url": "   "}).status_code == 400


def test_listing_details_falls_back_to_url_name() -> None:
    resolver = ListingResolver([StubStrategy("fast", None)], sleep=no_sleep)
    client = TestClient(_build_app(resolver))

    response = client.get("/listings/details", params={"url": SAGAR_URL})

    assert response.status_code == 200
    assert response.json()["name"] == "Sagar Stationers"
    assert response.json()["rating"] == "N/A"


def test_cache_endpoints_report_and_clear(resolver: ListingResolver) -> None:
    client = TestClient(_build_app(resolver))
    client.get("/listings/details", params={"url": "https://maps.example/joes"})

    snapshot = client.get("/listings/cache").json()
    assert snapshot["cache_size"] == 1
    assert snapshot["entries"]["https://maps.example/joes"]["name"] == "Joe's Cafe"

    assert client.post("/listings/cache/clear").json() == {"cleared": 1}
    assert client.get("/listings/cache").json()["cache_size"] == 0


def test_listing_routes_need_an_initialized_resolver() -> None:
    client = TestClient(_build_app(None))

    assert client.get("/listings/details", params={"url": "https://maps.example/joes"}).status_code == 503
    assert client.post("/listings/cache/clear").status_code == 503


def test_store_routes_list_and_register(resolver: ListingResolver) -> None:
    collection = FakeCollection([{"_id": "store-1", "username": "joe", "url": "https://maps.example/joes"}])
    app = _build_app(resolver)
    app.dependency_overrides[get_store_service] = lambda: StoreService(resolver, collection)
    client = TestClient(app)

    listed = client.get("/stores")
    created = client.post("/stores", json={"username": "sagar", "url": SAGAR_URL})
    duplicate = client.post("/stores", json={"username": "other", "url": SAGAR_URL})

    assert listed.status_code == 200
    assert listed.json()[0]["name"] == "Joe's Cafe"
    assert created.status_code == 201
    assert created.json()["store_name"] == "Joe's Cafe"
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Store with this URL already exists."


def test_store_routes_reject_unexpected_fields(resolver: ListingResolver) -> None:
    app = _build_app(resolver)
    app.dependency_overrides[get_store_service] = lambda: StoreService(resolver, FakeCollection())
    client = TestClient(app)

    response = client.post("/stores", json={"username": "joe", "url": "https://maps.example/joes", "password": "x"})

    assert response.status_code == 422


def test_store_routes_report_missing_database(resolver: ListingResolver) -> None:
    client = TestClient(_build_app(resolver))

    assert client.get("/stores").status_code == 503


def test_health_includes_resolver_state(resolver: ListingResolver, monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_ping() -> tuple[bool, str | None]:
        return True, None

    monkeypatch.setattr(health, "ping_mongo_detailed", fake_ping)
    client = TestClient(_build_app(resolver))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["strategies"] == ["fast"]
    assert response.json()["listing_cache_size"] == 0


def test_health_degrades_when_mongo_is_down(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_ping() -> tuple[bool, str | None]:
        return False, "connection refused"

    monkeypatch.setattr(health, "ping_mongo_detailed", fake_ping)
    client = TestClient(_build_app(None))

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["mongo"] == "down"
    assert response.json()["detail"] == "connection refused"


def test_store_registration_reports_unavailable_database(resolver: ListingResolver) -> None:
    service = AsyncMock(spec=StoreService)
    service.register_store.side_effect = RuntimeError("MongoDB connection has not been initialized.")
    app = _build_app(resolver)
    app.dependency_overrides[get_store_service] = lambda: service
    client = TestClient(app)

    response = client.post("/stores", json={"username": "joe", "url": "https://maps.example/joes"})

    assert response.status_code == 503
    service.register_store.assert_awaited_once()
