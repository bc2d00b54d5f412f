import math
from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from boost import boost_status, clear_expired_boosts
from database import PREFERENCES, USERS
from errors import NotFound
from feed import build_feed, exclusion_set
from geo import EARTH_RADIUS_MILES
from schemas import FeedFilters
from swipes import record_swipe

MILES_PER_DEGREE = math.pi * EARTH_RADIUS_MILES / 180


def _ids(page):
    return [card["id"] for card in page.cards]


def test_exclusions_cover_self_swiped_and_dislikers(db, make_user, now):
    me = make_user()
    liked, disliked, superliked = make_user(), make_user(), make_user()
    hater, admirer, stranger = make_user(), make_user(), make_user()

    record_swipe(db, me, liked, "like")
    record_swipe(db, me, disliked, "dislike")
    record_swipe(db, me, superliked, "superlike")
    record_swipe(db, hater, me, "dislike")
    record_swipe(db, admirer, me, "like")

    assert set(exclusion_set(db, me)) == {me, liked, disliked, superliked, hater}
    assert set(_ids(build_feed(db, me, now=now))) == {str(admirer), str(stranger)}


def test_unknown_requester(db, now):
    with pytest.raises(NotFound):
        build_feed(db, ObjectId(), now=now)


def test_boosted_candidates_come_first(db, make_user, now):
    me = make_user()
    older = make_user(createdAt=now - timedelta(days=3))
    boosted = make_user(createdAt=now - timedelta(days=2), isBoostActive=True,
                        boostEndTime=now + timedelta(minutes=30))
    lapsed = make_user(createdAt=now - timedelta(days=1), isBoostActive=True,
                       boostEndTime=now - timedelta(minutes=1))

    page = build_feed(db, me, now=now)

    assert _ids(page)[0] == str(boosted)
    assert _ids(page)[1:] == [str(lapsed), str(older)]
    by_id = {card["id"]: card for card in page.cards}
    assert by_id[str(boosted)]["isBoosted"] is True
    assert by_id[str(boosted)]["boostEndTime"] == now + timedelta(minutes=30)
    assert by_id[str(lapsed)]["isBoosted"] is False
    assert by_id[str(lapsed)]["boostEndTime"] is None
    assert page.expired_boost_ids == [lapsed]


def test_lapsed_boosts_are_cleared_after_feed(db, make_user, now):
    me = make_user()
    lapsed = make_user(isBoostActive=True, boostStartTime=now - timedelta(hours=3),
                       boostEndTime=now - timedelta(seconds=1))

    page = build_feed(db, me, now=now)
    assert clear_expired_boosts(db, page.expired_boost_ids, now) == 1

    stored = db[USERS].find_one({"_id": lapsed})
    assert stored["isBoostActive"] is False
    assert stored["boostEndTime"] is None
    assert boost_status(db, lapsed, now)["isBoostActive"] is False


def test_distance_filter_keeps_candidates_without_coordinates(db, make_user, now):
    me = make_user(latitude=40.0, longitude=-74.0)
    near = make_user(latitude=40.0 + 5 / MILES_PER_DEGREE, longitude=-74.0)
    far = make_user(latitude=40.0 + 15 / MILES_PER_DEGREE, longitude=-74.0)
    unknown = make_user()

    ids = set(_ids(build_feed(db, me, FeedFilters(maxDistance="10"), now=now)))

    assert str(near) in ids
    assert str(unknown) in ids
    assert str(far) not in ids


def test_requester_without_coordinates_skips_distance(db, make_user, now):
    me = make_user()
    far = make_user(latitude=10.0, longitude=10.0)
    assert str(far) in _ids(build_feed(db, me, FeedFilters(maxDistance="1"), now=now))


def test_saved_age_band(db, make_user, now):
    me = make_user()
    db[PREFERENCES].insert_one({"user": me, "minAge": 25, "maxAge": 30})
    exactly_25 = make_user(birthday=datetime(2001, 10, 16))
    almost_25 = make_user(birthday=datetime(2001, 10, 17))
    aged_30 = make_user(birthday=datetime(1995, 10, 17))
    aged_31 = make_user(birthday=datetime(1995, 10, 16))

    ids = set(_ids(build_feed(db, me, now=now)))
    assert ids == {str(exactly_25), str(aged_30)}
    assert str(almost_25) not in ids and str(aged_31) not in ids


def test_age_override_wins_over_saved_band(db, make_user, now):
    me = make_user()
    db[PREFERENCES].insert_one({"user": me, "minAge": 25, "maxAge": 30})
    young = make_user(birthday=datetime(2006, 1, 1))

    assert _ids(build_feed(db, me, FeedFilters(minAge="18", maxAge="22"), now=now)) == [str(young)]


def test_defaults_to_other_genders_and_own_profile_type(db, make_user, now):
    g1, g2 = ObjectId(), ObjectId()
    me = make_user(genderId=g1, profileType="business")
    same = make_user(genderId=g1, profileType="business")
    other = make_user(genderId=g2, profileType="business")
    personal = make_user(genderId=g2, profileType="personal")

    ids = _ids(build_feed(db, me, now=now))
    assert ids == [str(other)]
    assert str(same) not in ids and str(personal) not in ids


def test_saved_gender_preference(db, make_user, now):
    g1, g2 = ObjectId(), ObjectId()
    me = make_user(genderId=g1)
    db[PREFERENCES].insert_one({"user": me, "showMeGenders": [g1]})
    same = make_user(genderId=g1)
    make_user(genderId=g2)

    assert _ids(build_feed(db, me, now=now)) == [str(same)]


def test_profile_type_override_is_case_insensitive(db, make_user, now):
    me = make_user()
    biz = make_user(profileType="business")
    make_user(profileType="personal")

    assert _ids(build_feed(db, me, FeedFilters(profileType="Business"), now=now)) == [str(biz)]


def test_malformed_overrides_are_ignored(db, make_user, now):
    me = make_user()
    other = make_user()
    filters = FeedFilters(minAge="abc", maxDistance="far", genderIds="not-an-id", workIds=",,")

    assert _ids(build_feed(db, me, filters, now=now)) == [str(other)]


def test_id_set_and_premium_overrides(db, make_user, now):
    me = make_user()
    work = ObjectId()
    match = make_user(workId=work, isPremium=True)
    make_user(workId=work, isPremium=False)
    make_user(isPremium=True)

    filters = FeedFilters(workIds=str(work), premiumOnly="true")
    assert _ids(build_feed(db, me, filters, now=now)) == [str(match)]


def test_page_is_truncated_to_limit(db, make_user, now):
    me = make_user()
    created = [make_user(createdAt=now - timedelta(minutes=i)) for i in range(5)]

    first = build_feed(db, me, page=1, limit=2, now=now)
    second = build_feed(db, me, page=2, limit=2, now=now)

    assert _ids(first) == [str(created[0]), str(created[1])]
    assert _ids(second)[:2] == [str(created[2]), str(created[3])]


def test_like_flags_and_card_shape(db, make_user, now):
    me = make_user()
    make_user(name="Riya", currentCity="Mumbai", photos=["https://cdn.example.com/a.jpg"])

    card = build_feed(db, me, FeedFilters(), with_like_flags=True, now=now).cards[0]
    assert card["isLike"] == 0
    assert card["name"] == "Riya"
    assert card["age"] == 31
    assert card["profileImage"] == "https://cdn.example.com/a.jpg"
    assert card["portfolioImages"] == ["https://cdn.example.com/a.jpg"]

    plain = build_feed(db, me, now=now).cards[0]
    assert "isLike" not in plain


@pytest.mark.parametrize("filters", [
    FeedFilters(maxAge="3000"),
    FeedFilters(minAge="-9000"),
    FeedFilters(minAge="-9000", maxAge="3000"),
])
def test_out_of_range_age_override_is_ignored(db, make_user, now, filters):
    me = make_user()
    other = make_user()
    assert _ids(build_feed(db, me, filters, now=now)) == [str(other)]


def test_out_of_range_saved_ages_fall_back_to_defaults(db, make_user, now):
    me = make_user()
    db[PREFERENCES].insert_one({"user": me, "minAge": -40, "maxAge": 5000})
    other = make_user()
    assert _ids(build_feed(db, me, now=now)) == [str(other)]
