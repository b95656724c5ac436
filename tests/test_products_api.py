import asyncio
import uuid

from app.services.cache import CacheService
from app.utils.caching import cache

HEADER = "X-Idempotency-Key"


def cached_rating(product_id):
    return asyncio.run(CacheService(cache).get_rating(product_id))


def test_create_product(client):
    payload = {"name": "Desk Lamp", "description": "Warm light", "price": 24.5}
    response = client.post("/api/v1/products", json=payload)

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Product created"
    assert data["status_code"] == 201
    assert data["data"]["name"] == "Desk Lamp"
    assert data["data"]["price"] == 24.5
    assert data["data"]["average_rating"] is None


def test_create_product_validation(client):
    response = client.post("/api/v1/products", json={"name": "", "price": 10})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert "name" in body["data"]["errors"]

    response = client.post("/api/v1/products", json={"name": "Free", "price": 0})
    assert response.status_code == 400
    assert "price" in response.json()["data"]["errors"]


def test_get_missing_product(client):
    response = client.get("/api/v1/products/999999")

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["message"] == "Product not found"
    assert cached_rating(999999) == (None, False)


def test_get_product_caches_rating(client, create_product):
    product_id = create_product()

    response = client.get(f"/api/v1/products/{product_id}")
    assert response.status_code == 200
    assert response.json()["data"]["average_rating"] is None
    assert cached_rating(product_id) == (None, True)

    for rating in (4, 5):
        client.post(f"/api/v1/products/{product_id}/reviews", json={"rating": rating})
    assert cached_rating(product_id) == (None, False)

    response = client.get(f"/api/v1/products/{product_id}")
    assert response.json()["data"]["average_rating"] == 4.5
    assert cached_rating(product_id) == (4.5, True)


def test_list_products_newest_first_with_ratings(client, create_product):
    older = create_product(name="Older")
    newer = create_product(name="Newer")
    client.post(f"/api/v1/products/{newer}/reviews", json={"rating": 3})

    response = client.get("/api/v1/products", params={"limit": 2})

    assert response.status_code == 200
    items = response.json()["data"]
    assert [item["id"] for item in items] == [newer, older]
    assert items[0]["average_rating"] == 3.0
    assert items[1]["average_rating"] is None
    assert cached_rating(newer) == (3.0, True)


def test_list_products_clamps_pagination(client, create_product):
    create_product()

    assert len(client.get("/api/v1/products", params={"limit": 0}).json()["data"]) == 1
    response = client.get("/api/v1/products", params={"limit": 1000, "offset": -5})
    assert response.status_code == 200
    assert 1 <= len(response.json()["data"]) <= 100


def test_update_product(client, create_product):
    product_id = create_product()

    response = client.put(
        f"/api/v1/products/{product_id}",
        json={"name": "Renamed", "description": None, "price": 12},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Product updated"
    assert response.json()["data"]["name"] == "Renamed"
    assert response.json()["data"]["description"] is None

    missing = client.put("/api/v1/products/999999", json={"name": "x", "price": 1})
    assert missing.status_code == 404

    invalid = client.put(f"/api/v1/products/{product_id}", json={"name": "x"})
    assert invalid.status_code == 400


def test_delete_product_with_reviews_is_rejected(client, create_product):
    product_id = create_product()
    review = client.post(
        f"/api/v1/products/{product_id}/reviews", json={"rating": 2}
    ).json()["data"]

    response = client.delete(f"/api/v1/products/{product_id}")
    assert response.status_code == 409
    assert response.json()["message"] == "Cannot delete product with existing reviews"

    client.delete(f"/api/v1/products/{product_id}/reviews/{review['id']}")
    assert client.delete(f"/api/v1/products/{product_id}").status_code == 204
    assert client.get(f"/api/v1/products/{product_id}").status_code == 404
    assert client.delete(f"/api/v1/products/{product_id}").status_code == 404


def test_repeated_create_with_token_creates_one_product(client):
    name = f"Kettle {uuid.uuid4().hex[:8]}"
    payload = {"name": name, "price": 30}
    headers = {HEADER: f"product-{uuid.uuid4()}"}

    first = client.post("/api/v1/products", json=payload, headers=headers)
    second = client.post("/api/v1/products", json=payload, headers=headers)

    assert first.status_code == second.status_code == 201
    assert first.content == second.content
    listed = client.get("/api/v1/products", params={"limit": 100}).json()["data"]
    assert [item["name"] for item in listed].count(name) == 1


def test_invalid_attempt_with_token_can_be_corrected(client):
    headers = {HEADER: f"product-{uuid.uuid4()}"}

    failed = client.post("/api/v1/products", json={"name": "", "price": 5}, headers=headers)
    fixed = client.post("/api/v1/products", json={"name": "Mug", "price": 5}, headers=headers)

    assert failed.status_code == 400
    assert fixed.status_code == 201
    assert fixed.json()["data"]["name"] == "Mug"


def test_out_of_range_product_id_is_rejected(client):
    for request in (
        lambda: client.get("/api/v1/products/3000000000"),
        lambda: client.put("/api/v1/products/3000000000", json={"name": "x", "price": 1}),
        lambda: client.delete("/api/v1/products/3000000000"),
        lambda: client.get("/api/v1/products/3000000000/reviews"),
    ):
        response = request()
        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"
        assert "path.product_id" in response.json()["data"]["errors"]


def test_out_of_range_review_id_is_rejected(client, create_product):
    product_id = create_product()

    response = client.put(
        f"/api/v1/products/{product_id}/reviews/2147483648", json={"rating": 4}
    )

    assert response.status_code == 400
    assert "path.review_id" in response.json()["data"]["errors"]
