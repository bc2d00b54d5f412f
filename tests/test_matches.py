from datetime import datetime

import pytest
from bson import ObjectId

from database import GENDERS, INTERESTS, MATCHES, WORKS
from errors import InvalidArgument, NotFound
from matches import get_profile, list_likes, list_matches
from schemas import FeedFilters
from swipes import record_swipe


def _match(db, a, b):
    record_swipe(db, a, b, "like")
    return record_swipe(db, b, a, "like")


def test_match_listing_from_both_sides(db, make_user, now):
    a, b = make_user(name="Asha"), make_user(name="Ben")
    _match(db, a, b)

    for me, other, name in ((a, b, "Ben"), (b, a, "Asha")):
        cards = list_matches(db, me, today=now.date())
        assert [c["id"] for c in cards] == [str(other)]
        assert cards[0]["name"] == name
        assert cards[0]["isLike"] == 1


def test_inactive_matches_are_hidden(db, make_user):
    a, b = make_user(), make_user()
    _match(db, a, b)
    db[MATCHES].update_many({}, {"$set": {"isActive": False}})
    assert list_matches(db, a) == []


def test_match_listing_post_filters(db, make_user, now):
    me = make_user(latitude=40.0, longitude=-74.0)
    biz = make_user(profileType="business", latitude=40.01, longitude=-74.0)
    young = make_user(birthday=datetime(2005, 1, 1), latitude=40.01, longitude=-74.0)
    far = make_user(latitude=45.0, longitude=-74.0)
    for other in (biz, young, far):
        _match(db, me, other)

    def listed(**filters):
        return {c["id"] for c in list_matches(db, me, FeedFilters(**filters), today=now.date())}

    assert listed() == {str(biz), str(young), str(far)}
    assert listed(profileType="business") == {str(biz)}
    assert listed(maxAge="25") == {str(young)}
    assert listed(maxDistance="50") == {str(biz), str(young)}


def test_likes_received_and_sent(db, make_user, now):
    me = make_user()
    admirer, super_fan, hater = make_user(), make_user(), make_user()
    crush = make_user()

    record_swipe(db, admirer, me, "like")
    record_swipe(db, super_fan, me, "superlike")
    record_swipe(db, hater, me, "dislike")
    record_swipe(db, me, crush, "like")

    received = {c["id"] for c in list_likes(db, me, "received", today=now.date())}
    sent = {c["id"] for c in list_likes(db, me, "sent", today=now.date())}
    assert received == {str(admirer), str(super_fan)}
    assert sent == {str(crush)}


def test_profile_resolves_taxonomy_names(db, make_user, now):
    gender = db[GENDERS].insert_one({"name": "Woman", "isActive": True}).inserted_id
    work = db[WORKS].insert_one({"name": "Designer"}).inserted_id
    music = db[INTERESTS].insert_one({"name": "Music"}).inserted_id
    user = make_user(name="Riya", genderId=gender, workId=work, interests=[music], password="secret",
                     likes=4)

    profile = get_profile(db, str(user), "http://api.test", now.date())

    assert profile["id"] == str(user)
    assert profile["gender"] == {"id": str(gender), "name": "Woman"}
    assert profile["work"] == {"id": str(work), "name": "Designer"}
    assert profile["interests"] == [{"id": str(music), "name": "Music"}]
    assert profile["orientation"] is None
    assert profile["likes"] == 4
    assert profile["profileImage"] == "http://api.test/public/default_profile_image.png"
    assert "password" not in profile


def test_profile_lookup_errors(db):
    with pytest.raises(InvalidArgument):
        get_profile(db, "nope")
    with pytest.raises(NotFound):
        get_profile(db, str(ObjectId()))
