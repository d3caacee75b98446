import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from models.category import Category
from models.content_item import ContentItem
from models.user import User
from models.user_interest import UserInterest
from services.content_repository import SqlContentRepository, _to_record
from services.content_types import ALL_ACTIVE, UNKNOWN_CREATED_AT, ContentSort
from services.interests import InterestResolutionError
from services.session_token import create_session_token


ANIMALS_ID = str(uuid.uuid4())
CRICKET_ID = str(uuid.uuid4())
RETIRED_ID = str(uuid.uuid4())
FAN_USER_ID = str(uuid.uuid4())
NEW_USER_ID = str(uuid.uuid4())
SUSPENDED_ITEM_ID = str(uuid.uuid4())


def _auth_header(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user_id)['token']}"}


def _images(count: int) -> list:
    return [
        {
            "url": f"https://cdn.test/{uuid.uuid4()}.png",
            "alt": f"image {n}",
            "language": "hindi" if n % 2 else "english",
        }
        for n in range(count)
    ]


async def _seed(session_maker) -> dict:
    now = datetime.now(timezone.utc)
    seeded = {}
    async with session_maker() as session:
        session.add_all(
            [
                Category(id=ANIMALS_ID, title="Animals", slug="animals"),
                Category(id=CRICKET_ID, title="Cricket", slug="cricket"),
                Category(id=RETIRED_ID, title="Retired", slug="retired", is_deleted=True),
                User(id=FAN_USER_ID, phone="+910000000001", name="Cricket Fan"),
                User(id=NEW_USER_ID, phone="+910000000002"),
            ]
        )
        await session.flush()
        session.add(UserInterest(user_id=FAN_USER_ID, category_id=CRICKET_ID))

        rows = [
            ("lion", ANIMALS_ID, 3, 0, now - timedelta(days=6)),
            ("tiger", ANIMALS_ID, 1, 10, now - timedelta(minutes=1)),
            ("parrot", ANIMALS_ID, 0, 2, now - timedelta(days=30)),
            ("sixer", CRICKET_ID, 2, 1, now - timedelta(days=3)),
            ("wicket", CRICKET_ID, 4, 0, now - timedelta(days=12)),
        ]
        for slug, category_id, image_count, sort_order, created_at in rows:
            item = ContentItem(
                id=str(uuid.uuid4()),
                title=slug.title(),
                slug=slug,
                category_id=category_id,
                images_json=_images(image_count),
                sort_order=sort_order,
                created_at=created_at,
            )
            seeded[slug] = item.id
            session.add(item)

        session.add(
            ContentItem(
                id=SUSPENDED_ITEM_ID,
                title="Hidden",
                slug="hidden",
                category_id=ANIMALS_ID,
                images_json=_images(8),
                sort_order=-50,
                is_suspended=True,
                created_at=now,
            )
        )
        await session.commit()
    return seeded


@pytest_asyncio.fixture
async def seeded_db(tmp_path):
    db_path = tmp_path / "content_feed.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    seeded = await _seed(session_maker)
    yield session_maker, seeded
    await engine.dispose()


@pytest_asyncio.fixture
async def content_client(seeded_db):
    session_maker, seeded = seeded_db

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        setattr(client, "_seeded", seeded)
        yield client

    app.dependency_overrides.pop(get_db, None)


@pytest.mark.asyncio
async def test_anonymous_feed_falls_back_to_trending(content_client):
    response = await content_client.get("/content")
    assert response.status_code == 200
    payload = response.json()

    assert payload["personalization"] == {
        "is_personalized": False,
        "filter_type": "trending_fallback",
        "fallback_reason": "not_authenticated",
    }
    assert payload["total_count"] == 5
    assert payload["total_pages"] == 1
    assert payload["serial_number_start_from"] == 1
    assert payload["prev_page"] is None and payload["next_page"] is None
    scores = [item["trending_score"] for item in payload["items"]]
    assert scores == sorted(scores, reverse=True)
    assert all(item["slug"] != "hidden" for item in payload["items"])

    by_slug = {item["slug"]: item for item in payload["items"]}
    assert by_slug["lion"]["trending_score"] == pytest.approx(7.0, abs=0.01)
    assert by_slug["lion"]["category"] == {"id": ANIMALS_ID, "title": "Animals", "slug": "animals"}


@pytest.mark.asyncio
async def test_interested_user_gets_personalized_feed(content_client):
    response = await content_client.get("/content", headers=_auth_header(FAN_USER_ID))
    assert response.status_code == 200
    payload = response.json()

    assert payload["personalization"] == {
        "is_personalized": True,
        "filter_type": "user_interests",
        "interest_categories": [CRICKET_ID],
    }
    assert payload["total_count"] == 2
    assert [item["slug"] for item in payload["items"]] == ["wicket", "sixer"]
    assert all("trending_score" not in item for item in payload["items"])


@pytest.mark.asyncio
async def test_user_without_interests_gets_trending(content_client):
    response = await content_client.get("/content", headers=_auth_header(NEW_USER_ID))
    assert response.status_code == 200
    assert response.json()["personalization"]["fallback_reason"] == "no_interests"


@pytest.mark.asyncio
async def test_invalid_token_is_treated_as_anonymous(content_client):
    response = await content_client.get("/content", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 200
    assert response.json()["personalization"]["fallback_reason"] == "not_authenticated"


@pytest.mark.asyncio
async def test_explicit_category_overrides_interests(content_client):
    response = await content_client.get(
        "/content",
        params={"category": ANIMALS_ID},
        headers=_auth_header(FAN_USER_ID),
    )
    assert response.status_code == 200
    payload = response.json()

    assert payload["personalization"] == {"is_personalized": False, "filter_type": "specific_single_category"}
    assert [item["slug"] for item in payload["items"]] == ["lion", "parrot", "tiger"]
    assert {item["category"]["id"] for item in payload["items"]} == {ANIMALS_ID}


@pytest.mark.asyncio
async def test_multiple_categories_with_pagination(content_client):
    response = await content_client.get(
        "/content",
        params={"categories": f"{ANIMALS_ID},{CRICKET_ID}", "page": 2, "limit": 2},
    )
    assert response.status_code == 200
    payload = response.json()

    assert payload["personalization"]["filter_type"] == "specific_multiple_categories"
    assert payload["total_count"] == 5
    assert payload["total_pages"] == 3
    assert payload["serial_number_start_from"] == 3
    assert payload["has_prev_page"] is True
    assert payload["has_next_page"] is True
    assert len(payload["items"]) == 2


@pytest.mark.asyncio
async def test_page_past_the_end_returns_empty_items(content_client):
    response = await content_client.get("/content", params={"page": 4, "limit": 2})
    assert response.status_code == 200
    payload = response.json()
    assert payload["items"] == []
    assert payload["total_count"] == 5
    assert payload["total_pages"] == 3
    assert payload["has_next_page"] is False


@pytest.mark.asyncio
async def test_language_filter_narrows_images_only(content_client):
    response = await content_client.get("/content", params={"category": CRICKET_ID, "language": "hindi"})
    assert response.status_code == 200
    payload = response.json()

    assert payload["total_count"] == 2
    images = {item["slug"]: item["images"] for item in payload["items"]}
    assert len(images["wicket"]) == 2
    assert len(images["sixer"]) == 1
    assert all(image["language"] == "hindi" for rows in images.values() for image in rows)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params,status",
    [
        ({"category": "not-an-id"}, 400),
        ({"categories": f"{ANIMALS_ID},xyz"}, 400),
        ({"page": 0}, 422),
        ({"limit": 0}, 422),
        ({"limit": 1000}, 422),
        ({"language": "french"}, 422),
    ],
)
async def test_invalid_requests_are_rejected(content_client, params, status):
    response = await content_client.get("/content", params=params)
    assert response.status_code == status


@pytest.mark.asyncio
async def test_interest_lookup_failure_fails_open(content_client):
    with patch(
        "services.interests.SqlInterestResolver._lookup",
        side_effect=InterestResolutionError("interest store offline"),
    ):
        response = await content_client.get("/content", headers=_auth_header(FAN_USER_ID))

    assert response.status_code == 200
    personalization = response.json()["personalization"]
    assert personalization["filter_type"] == "trending_fallback"
    assert personalization["fallback_reason"] == "interest_lookup_failed"


@pytest.mark.asyncio
async def test_storage_failure_is_a_server_error(content_client):
    with patch(
        "services.content_repository.SqlContentRepository.count",
        side_effect=OperationalError("SELECT count(*)", {}, Exception("database is down")),
    ):
        response = await content_client.get("/content", params={"category": ANIMALS_ID})

    assert response.status_code == 500
    assert response.json() == {"detail": "Content storage error."}


@pytest.mark.asyncio
async def test_trending_endpoint_with_category_filter(content_client):
    response = await content_client.get("/content/trending", params={"category": ANIMALS_ID, "language": "english"})
    assert response.status_code == 200
    payload = response.json()

    assert payload["filters"] == {"categories": [ANIMALS_ID], "language": "english"}
    assert payload["algorithm"]["weights"]["image_count"] == 2.0
    assert [item["slug"] for item in payload["items"]] == ["tiger", "lion", "parrot"]
    scores = [item["trending_score"] for item in payload["items"]]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_by_category_listing(content_client):
    response = await content_client.get(f"/content/by-category/{CRICKET_ID}")
    assert response.status_code == 200
    payload = response.json()
    assert payload["category"]["slug"] == "cricket"
    assert payload["total_count"] == 2

    missing = await content_client.get(f"/content/by-category/{uuid.uuid4()}")
    assert missing.status_code == 404

    retired = await content_client.get(f"/content/by-category/{RETIRED_ID}")
    assert retired.status_code == 404

    malformed = await content_client.get("/content/by-category/cricket")
    assert malformed.status_code == 400


@pytest.mark.asyncio
async def test_single_item_lookup(content_client):
    lion_id = content_client._seeded["lion"]
    response = await content_client.get(f"/content/{lion_id}", params={"language": "english"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["slug"] == "lion"
    assert len(payload["images"]) == 2
    assert "trending_score" not in payload

    hidden = await content_client.get(f"/content/{SUSPENDED_ITEM_ID}")
    assert hidden.status_code == 404

    malformed = await content_client.get("/content/lion")
    assert malformed.status_code == 400


@pytest.mark.asyncio
async def test_single_item_route_is_rate_limited(content_client, enforced_rate_limits):
    lion_id = content_client._seeded["lion"]
    statuses = [(await content_client.get(f"/content/{lion_id}")).status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    assert any(key.startswith("banner:rate:content_item:") for key in enforced_rate_limits)


@pytest.mark.asyncio
async def test_sql_trending_pages_match_the_full_ranking(seeded_db):
    session_maker, _ = seeded_db
    now = datetime.now(timezone.utc)
    sort = ContentSort.trending(now)

    async with session_maker() as session:
        repository = SqlContentRepository(session)
        full = await repository.find(ALL_ACTIVE, sort, skip=0, limit=10)
        paged = []
        for skip in (0, 2, 4):
            paged.extend(await repository.find(ALL_ACTIVE, sort, skip=skip, limit=2))
        past_the_end = await repository.find(ALL_ACTIVE, sort, skip=10, limit=2)

    assert [item.record.id for item in paged] == [item.record.id for item in full]
    assert [item.record.slug for item in full] == ["wicket", "tiger", "lion", "sixer", "parrot"]
    assert all(item.record.title for item in paged)
    assert [item.trending_score for item in paged] == [item.trending_score for item in full]
    assert SUSPENDED_ITEM_ID not in {item.record.id for item in full}
    assert past_the_end == []


def test_missing_created_at_maps_to_a_fixed_timestamp():
    row = ContentItem(
        id=str(uuid.uuid4()),
        title="Undated",
        slug="undated",
        category_id=ANIMALS_ID,
        images_json=_images(1),
        sort_order=0,
        created_at=None,
    )
    record = _to_record(row)

    assert record.created_at == UNKNOWN_CREATED_AT
