import random
from collections import Counter
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from classifieds import crud, models
from classifieds.models import utcnow

pytestmark = pytest.mark.usefixtures("fake_geocoder")

LA = (34.0522, -118.2437)
ZIP_10002 = (40.7178, -73.9870)


def listing_ids(response):
    return [item["id"] for item in response.json()["listings"]]


# --- Create / read / update / delete ---


def test_create_listing_sets_expiry_and_geocodes(
    client: TestClient, db_session: Session, make_user, category, headers_for
):
    seller = make_user()
    response = client.post(
        "/api/v1/listings",
        json={
            "title": "iPhone 13",
            "description": "Like new",
            "price": 450,
            "category_id": category.id,
            "subcategory_id": category.subcategories[0].id,
            "images": ["https://img.example.com/1.jpg"],
            "zip_code": "10001",
        },
        headers=headers_for(seller),
    )
    assert response.status_code == 201
    data = response.json()["listing"]
    assert data["status"] == "active"
    assert data["user_id"] == seller.id
    assert data["category"]["slug"] == "electronics"
    assert data["subcategory"]["slug"] == "phones"
    lifetime = datetime.fromisoformat(data["expires_at"]) - datetime.fromisoformat(data["created_at"])
    assert abs(lifetime - timedelta(days=7)) < timedelta(seconds=5)

    # Geocoding runs as a background task after the response
    db_session.expire_all()
    listing = db_session.get(models.Listing, data["id"])
    assert (listing.latitude, listing.longitude) == (40.7506, -73.9972)


def test_create_listing_with_real_estate_details(client: TestClient, make_user, category, headers_for):
    seller = make_user()
    response = client.post(
        "/api/v1/listings",
        json={
            "title": "2BR apartment",
            "price": 2500,
            "category_id": category.id,
            "property_type": "apartment",
            "listing_type": "rent",
            "bedrooms": 2,
            "bathrooms": 1.5,
            "amenities": ["parking", "laundry"],
        },
        headers=headers_for(seller),
    )
    assert response.status_code == 201
    data = response.json()["listing"]
    assert data["listing_type"] == "rent"
    assert data["real_estate_details"]["property_type"] == "apartment"
    assert data["real_estate_details"]["bedrooms"] == 2
    assert data["real_estate_details"]["amenities"] == ["parking", "laundry"]


def test_create_listing_with_unknown_category(client: TestClient, make_user, category, headers_for):
    seller = make_user()
    response = client.post(
        "/api/v1/listings",
        json={"title": "Thing", "price": 5, "category_id": 999},
        headers=headers_for(seller),
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid category"}


def test_create_listing_requires_auth(client: TestClient, category):
    response = client.post("/api/v1/listings", json={"title": "Thing", "category_id": category.id})
    assert response.status_code == 401


def test_update_listing_is_owner_only(client: TestClient, make_user, make_listing, headers_for):
    owner = make_user()
    stranger = make_user()
    listing = make_listing(owner)

    response = client.put(
        f"/api/v1/listings/{listing.id}", json={"title": "Hijacked"}, headers=headers_for(stranger)
    )
    assert response.status_code == 404

    response = client.put(
        f"/api/v1/listings/{listing.id}", json={"title": "Updated", "price": 80}, headers=headers_for(owner)
    )
    assert response.status_code == 200
    assert response.json()["listing"]["title"] == "Updated"
    assert response.json()["listing"]["price"] == 80


def test_update_listing_upserts_real_estate_details(client: TestClient, make_user, make_listing, headers_for):
    owner = make_user()
    listing = make_listing(owner)

    response = client.put(
        f"/api/v1/listings/{listing.id}",
        json={"property_type": "house", "bedrooms": 3},
        headers=headers_for(owner),
    )
    assert response.json()["listing"]["real_estate_details"]["bedrooms"] == 3
    assert response.json()["listing"]["listing_type"] == "sale"

    response = client.put(
        f"/api/v1/listings/{listing.id}",
        json={"property_type": "house", "bathrooms": 2},
        headers=headers_for(owner),
    )
    details = response.json()["listing"]["real_estate_details"]
    assert details["bedrooms"] == 3
    assert details["bathrooms"] == 2


def test_read_listing_counts_views(client: TestClient, make_user, make_listing):
    listing = make_listing(make_user())
    assert client.get(f"/api/v1/listings/{listing.id}").json()["listing"]["views"] == 1
    assert client.get(f"/api/v1/listings/{listing.id}").json()["listing"]["views"] == 2


def test_read_listing_not_found(client: TestClient, db_session: Session):
    response = client.get("/api/v1/listings/12345")
    assert response.status_code == 404
    assert response.json() == {"error": "Listing not found"}


def test_archive_and_renew_are_idempotent(client: TestClient, make_user, make_listing, headers_for):
    owner = make_user()
    listing = make_listing(owner)
    headers = headers_for(owner)

    first = client.post(f"/api/v1/listings/{listing.id}/archive", headers=headers).json()["listing"]
    second = client.post(f"/api/v1/listings/{listing.id}/archive", headers=headers).json()["listing"]
    assert first["status"] == second["status"] == "archived"
    assert first["archived_at"] is not None
    assert first["archived_at"] == second["archived_at"]

    first = client.post(f"/api/v1/listings/{listing.id}/renew", headers=headers).json()["listing"]
    second = client.post(f"/api/v1/listings/{listing.id}/renew", headers=headers).json()["listing"]
    assert first["status"] == second["status"] == "active"
    assert first["archived_at"] is None and second["archived_at"] is None
    remaining = datetime.fromisoformat(second["expires_at"]) - utcnow()
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)


def test_delete_listing_removes_dependents(
    client: TestClient, db_session: Session, make_user, make_listing, headers_for
):
    owner = make_user()
    buyer = make_user()
    listing = make_listing(owner)
    db_session.add(models.SavedListing(user_id=buyer.id, listing_id=listing.id))
    db_session.add(models.Offer(
        listing_id=listing.id, buyer_id=buyer.id, seller_id=owner.id, amount=50,
        expires_at=utcnow() + timedelta(hours=48),
    ))
    db_session.commit()

    response = client.delete(f"/api/v1/listings/{listing.id}", headers=headers_for(buyer))
    assert response.status_code == 404

    response = client.delete(f"/api/v1/listings/{listing.id}", headers=headers_for(owner))
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert db_session.query(models.Listing).count() == 0
    assert db_session.query(models.SavedListing).count() == 0
    assert db_session.query(models.Offer).count() == 0


# --- Search: database path ---


@pytest.mark.parametrize("sort", ["newest", "oldest", "price_low", "price_high"])
def test_pagination_is_stable_and_exhaustive(client: TestClient, make_user, make_listing, sort):
    owner = make_user()
    same_time = utcnow()
    prices = [30, None, 10, 30, 20, None, 10]
    created = [make_listing(owner, price=price, created_at=same_time).id for price in prices]

    seen = []
    for offset in (0, 3, 6):
        response = client.get("/api/v1/listings", params={"sort": sort, "limit": 3, "offset": offset})
        body = response.json()
        assert body["total"] == 7
        assert body["hasMore"] == (offset + 3 < 7)
        seen.extend(listing_ids(response))

    assert len(seen) == len(set(seen)) == 7
    assert sorted(seen) == sorted(created)


def test_price_sorts_put_missing_prices_last(client: TestClient, make_user, make_listing):
    owner = make_user()
    for price in (50, None, 10):
        make_listing(owner, price=price)

    low = [item["price"] for item in client.get("/api/v1/listings", params={"sort": "price_low"}).json()["listings"]]
    high = [item["price"] for item in client.get("/api/v1/listings", params={"sort": "price_high"}).json()["listings"]]
    assert low == [10, 50, None]
    assert high == [50, 10, None]


def test_newest_and_oldest_orderings(client: TestClient, make_user, make_listing):
    owner = make_user()
    now = utcnow()
    old = make_listing(owner, created_at=now - timedelta(days=2)).id
    mid = make_listing(owner, created_at=now - timedelta(days=1)).id
    new = make_listing(owner, created_at=now).id

    assert listing_ids(client.get("/api/v1/listings", params={"sort": "newest"})) == [new, mid, old]
    assert listing_ids(client.get("/api/v1/listings", params={"sort": "oldest"})) == [old, mid, new]
    # Unknown sorts fall back to newest
    assert listing_ids(client.get("/api/v1/listings", params={"sort": "bogus"})) == [new, mid, old]


def test_filters(client: TestClient, db_session: Session, make_user, make_listing, category):
    owner = make_user()
    other = make_user()
    furniture = models.Category(name="Furniture", slug="furniture", sort_order=2)
    db_session.add(furniture)
    db_session.commit()

    phone = make_listing(owner, title="Pixel phone", subcategory_id=category.subcategories[0].id)
    laptop = make_listing(other, title="ThinkPad", subcategory_id=category.subcategories[1].id)
    sofa = make_listing(owner, title="Leather sofa", category_id=furniture.id, listing_type="sale")
    archived = make_listing(owner, title="Old phone", status=models.ListingStatusEnum.archived)

    def ids(**params):
        return sorted(listing_ids(client.get("/api/v1/listings", params={"sort": "newest", **params})))

    assert ids() == sorted([phone.id, laptop.id, sofa.id])
    assert ids(category="electronics") == sorted([phone.id, laptop.id])
    assert ids(category="all") == sorted([phone.id, laptop.id, sofa.id])
    # Unknown slugs don't filter
    assert ids(category="no-such-category") == sorted([phone.id, laptop.id, sofa.id])
    assert ids(subcategory="laptops") == [laptop.id]
    assert ids(userId=owner.id) == sorted([phone.id, sofa.id])
    assert ids(type="sale") == [sofa.id]
    assert ids(search="PHONE") == [phone.id]
    assert ids(status="archived") == [archived.id]


def test_search_treats_wildcards_literally(client: TestClient, make_user, make_listing):
    owner = make_user()
    literal = make_listing(owner, title="100% cotton shirt")
    make_listing(owner, title="1000 cotton shirts")
    make_listing(owner, title="snake_case mug")
    make_listing(owner, title="snakeXcase mug")

    assert listing_ids(client.get("/api/v1/listings", params={"search": "100%"})) == [literal.id]
    assert len(listing_ids(client.get("/api/v1/listings", params={"search": "snake_case"}))) == 1


def test_invalid_status_is_rejected(client: TestClient, db_session: Session):
    response = client.get("/api/v1/listings", params={"status": "sold"})
    assert response.status_code == 400


def test_random_sort_returns_a_page_from_the_batch(client: TestClient, make_user, make_listing):
    owner = make_user()
    created = {make_listing(owner).id for _ in range(5)}

    response = client.get("/api/v1/listings", params={"sort": "random", "limit": 2})
    body = response.json()
    assert len(body["listings"]) == 2
    assert set(listing_ids(response)) <= created
    assert body["total"] == 5
    # Total never exceeds the batch of max(limit * 3, 100) rows
    assert body["hasMore"] is False


def first_page_counts(db_session: Session, rounds: int, **search):
    counts = Counter()
    for _ in range(rounds):
        page = crud.search_listings(db_session, sort="random", limit=2, **search)
        counts.update(listing.id for listing in page["listings"])
    return counts


def test_random_sort_is_roughly_uniform(db_session: Session, make_user, make_listing):
    owner = make_user()
    created = [make_listing(owner).id for _ in range(10)]
    random.seed(20240611)

    counts = first_page_counts(db_session, 400)
    # Each listing lands on page one with probability limit / total = 0.2, so 80 of 400
    assert set(counts) == set(created)
    for listing_id in created:
        assert 40 <= counts[listing_id] <= 120


def test_random_sort_is_roughly_uniform_within_radius(db_session: Session, make_user, make_listing):
    owner = make_user()
    created = [
        make_listing(owner, latitude=ZIP_10002[0] + i * 0.001, longitude=ZIP_10002[1]).id
        for i in range(8)
    ]
    make_listing(owner, latitude=LA[0], longitude=LA[1])
    random.seed(20240612)

    counts = first_page_counts(db_session, 400, zipcode="10001", distance=10)
    # limit / total = 2 / 8, so 100 of 400
    assert set(counts) == set(created)
    for listing_id in created:
        assert 55 <= counts[listing_id] <= 145


# --- Search: zipcode radius path ---


def test_zipcode_radius_membership(client: TestClient, make_user, make_listing):
    owner = make_user()
    nearby = make_listing(owner, latitude=ZIP_10002[0], longitude=ZIP_10002[1])
    make_listing(owner, latitude=LA[0], longitude=LA[1])
    make_listing(owner)  # never geocoded

    response = client.get("/api/v1/listings", params={"zipcode": "10001", "distance": 5})
    body = response.json()
    assert listing_ids(response) == [nearby.id]
    assert body["total"] == 1
    assert body["hasMore"] is False
    assert 2 < body["listings"][0]["distance"] < 3

    response = client.get("/api/v1/listings", params={"zipcode": "10001", "distance": 1})
    assert response.json() == {"listings": [], "total": 0, "hasMore": False}


def test_unresolvable_zipcode_returns_nothing(client: TestClient, make_user, make_listing):
    make_listing(make_user(), latitude=ZIP_10002[0], longitude=ZIP_10002[1])
    response = client.get("/api/v1/listings", params={"zipcode": "99999"})
    assert response.json() == {"listings": [], "total": 0, "hasMore": False}


def test_zipcode_nearest_sort_and_pagination(client: TestClient, make_user, make_listing):
    owner = make_user()
    far = make_listing(owner, latitude=40.80, longitude=-73.95)
    near = make_listing(owner, latitude=40.7510, longitude=-73.9970)
    middle = make_listing(owner, latitude=ZIP_10002[0], longitude=ZIP_10002[1])

    params = {"zipcode": "10001", "distance": 25, "sort": "nearest", "limit": 2}
    first = client.get("/api/v1/listings", params=params).json()
    assert [item["id"] for item in first["listings"]] == [near.id, middle.id]
    assert first["total"] == 3
    assert first["hasMore"] is True

    second = client.get("/api/v1/listings", params={**params, "offset": 2}).json()
    assert [item["id"] for item in second["listings"]] == [far.id]
    assert second["hasMore"] is False


def test_short_zipcode_uses_database_path(client: TestClient, make_user, make_listing):
    owner = make_user()
    make_listing(owner)
    make_listing(owner, latitude=LA[0], longitude=LA[1])

    response = client.get("/api/v1/listings", params={"zipcode": "1000", "sort": "newest"})
    assert response.json()["total"] == 2


# --- Saved listings and categories ---


def test_saved_listings(client: TestClient, make_user, make_listing, headers_for):
    owner = make_user()
    saver = make_user()
    listing = make_listing(owner)
    headers = headers_for(saver)

    response = client.post("/api/v1/saved-listings", json={"listing_id": listing.id}, headers=headers)
    assert response.status_code == 200
    assert response.json()["savedListing"]["listing_id"] == listing.id

    response = client.post("/api/v1/saved-listings", json={"listing_id": listing.id}, headers=headers)
    assert response.status_code == 400

    response = client.post("/api/v1/saved-listings", json={"listing_id": 999}, headers=headers)
    assert response.status_code == 400

    body = client.get("/api/v1/saved-listings", headers=headers).json()
    assert body["total"] == 1
    assert body["hasMore"] is False
    assert body["savedListings"][0]["listing"]["title"] == listing.title

    response = client.delete(f"/api/v1/saved-listings/{listing.id}", headers=headers)
    assert response.json() == {"success": True}
    assert client.get("/api/v1/saved-listings", headers=headers).json()["total"] == 0


def test_categories_are_ordered(client: TestClient, db_session: Session, category):
    db_session.add(models.Category(name="Autos", slug="autos", sort_order=0))
    db_session.commit()

    categories = client.get("/api/v1/categories").json()["categories"]
    assert [c["slug"] for c in categories] == ["autos", "electronics"]
    assert [s["slug"] for s in categories[1]["subcategories"]] == ["phones", "laptops"]
