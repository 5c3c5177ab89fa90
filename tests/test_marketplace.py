import pytest


@pytest.fixture
def make_item(client, resident):
    def _make(seller=None, **fields):
        seller = seller or resident
        data = {
            "title": "Oak bookshelf",
            "description": "Five shelves, solid wood",
            "price": "40",
            "category": "furniture",
            "condition": "good",
            "location": "Maple Avenue",
        }
        data.update(fields)
        res = client.post("/api/marketplace", data=data, headers=seller["headers"])
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


def test_create_item_with_images(client, resident):
    res = client.post("/api/marketplace", data={
        "title": "Road bike", "description": "54cm frame", "price": "150",
        "category": "sports", "location": "Pine Street",
    }, files=[
        ("images", ("front.jpg", b"jpg-bytes", "image/jpeg")),
        ("images", ("side.jpg", b"jpg-bytes", "image/jpeg")),
    ], headers=resident["headers"])
    assert res.status_code == 201, res.text
    data = res.json()["data"]
    assert data["seller_id"] == resident["id"]
    assert data["status"] == "available"
    assert len(data["images"]) == 2


def test_invalid_condition_rejected(client, resident):
    res = client.post("/api/marketplace", data={
        "title": "Lamp", "description": "Desk lamp", "price": "5", "category": "home",
        "condition": "broken", "location": "Pine Street",
    }, headers=resident["headers"])
    assert res.status_code == 400


def test_view_count_increments(client, make_item):
    item = make_item()
    url = f"/api/marketplace/{item['id']}"
    assert client.get(url).json()["data"]["view_count"] == 1
    assert client.get(url).json()["data"]["view_count"] == 2
    assert client.get("/api/marketplace/5f1d7f0e2a3b4c5d6e7f8091").status_code == 404


def test_list_only_available_items_with_filters(client, resident, make_item):
    make_item()
    make_item(title="Gaming laptop", description="16GB RAM", price="600", category="electronics",
              condition="like_new")
    sold = make_item(title="Couch", price="90")
    client.put(f"/api/marketplace/{sold['id']}/status", json={"status": "sold"}, headers=resident["headers"])

    body = client.get("/api/marketplace").json()
    assert body["count"] == 2
    assert body["pagination"] == {"page": 1, "pages": 1, "total": 2}
    assert client.get("/api/marketplace", params={"category": "all"}).json()["count"] == 2
    assert client.get("/api/marketplace", params={"category": "electronics"}).json()["count"] == 1
    assert client.get("/api/marketplace", params={"condition": "like_new"}).json()["count"] == 1
    assert client.get("/api/marketplace", params={"search": "laptop"}).json()["count"] == 1
    assert client.get("/api/marketplace", params={"max_price": 100}).json()["count"] == 1


def test_owner_only_changes(client, resident, neighbor, make_item):
    item = make_item()
    url = f"/api/marketplace/{item['id']}"
    assert client.put(url, json={"price": 1}, headers=neighbor["headers"]).status_code == 403
    assert client.put(f"{url}/status", json={"status": "sold"}, headers=neighbor["headers"]).status_code == 403
    assert client.delete(url, headers=neighbor["headers"]).status_code == 403

    res = client.put(url, json={"price": 35}, headers=resident["headers"])
    assert res.json()["data"]["price"] == 35
    assert client.delete(url, headers=resident["headers"]).status_code == 200
    assert client.get(url).status_code == 404


def test_status_must_be_valid(client, resident, make_item):
    item = make_item()
    res = client.put(f"/api/marketplace/{item['id']}/status", json={"status": "gone"}, headers=resident["headers"])
    assert res.status_code == 400
    res = client.put(f"/api/marketplace/{item['id']}/status", json={"status": "pending"}, headers=resident["headers"])
    assert res.json()["data"]["status"] == "pending"


def test_my_items(client, resident, neighbor, make_item):
    make_item()
    make_item(title="Desk")
    make_item(seller=neighbor)
    mine = client.get("/api/marketplace/my-items", headers=resident["headers"]).json()
    assert mine["count"] == 2
    assert mine["data"][0]["title"] == "Desk"
    count = client.get("/api/marketplace/my-items/count", headers=neighbor["headers"]).json()
    assert count["data"]["count"] == 1
