import pytest
from bson import ObjectId

from ratings import compute_rating_stats, update_product_rating
from tests.conftest import add_category, add_product


def add_review(db, product_id, rating, status="approved", user_id=None):
    return db["review"].insert_one({
        "product_id": product_id,
        "user_id": user_id or str(ObjectId()),
        "rating": rating,
        "status": status,
    }).inserted_id


def weighted_sum(stats):
    return sum(star * count for star, count in stats.rating_breakdown.items())


def test_worked_example():
    stats = compute_rating_stats([5, 5, 4])
    assert stats.average_rating == 4.7
    assert stats.total_reviews == 3
    assert stats.rating_breakdown == {5: 2, 4: 1, 3: 0, 2: 0, 1: 0}


@pytest.mark.parametrize("ratings, expected", [
    ([4, 4, 5], 4.3),
    ([4, 5], 4.5),
    ([4, 4, 4, 5], 4.3),  # 4.25 rounds half up
    ([1, 1, 1, 2], 1.3),
    ([3], 3.0),
    ([1, 2, 2, 2, 2, 2, 2, 2], 1.9),  # 1.875
])
def test_average_rounds_half_up_to_one_decimal(ratings, expected):
    assert compute_rating_stats(ratings).average_rating == expected


def test_empty_set_resets_everything():
    stats = compute_rating_stats([])
    assert stats.average_rating == 0
    assert stats.total_reviews == 0
    assert set(stats.rating_breakdown.values()) == {0}


def test_histogram_sums_to_total():
    ratings = [1, 2, 2, 3, 5, 5, 5, 4, 4]
    stats = compute_rating_stats(ratings)
    assert sum(stats.rating_breakdown.values()) == stats.total_reviews == len(ratings)


def test_document_uses_string_keys():
    doc = compute_rating_stats([2]).as_document()
    assert doc["rating_breakdown"] == {"5": 0, "4": 0, "3": 0, "2": 1, "1": 0}


def test_only_approved_reviews_count(db):
    product_id = add_product(db, "Baume", "10 TND", add_category(db, "Lèvres"))
    add_review(db, product_id, 5)
    add_review(db, product_id, 5)
    add_review(db, product_id, 4)
    add_review(db, product_id, 1, status="pending")
    add_review(db, product_id, 1, status="rejected")

    stats = update_product_rating(db, product_id)

    assert stats.total_reviews == 3
    product = db["product"].find_one({"_id": ObjectId(product_id)})
    assert product["average_rating"] == 4.7
    assert product["total_reviews"] == 3
    assert product["rating_breakdown"] == {"5": 2, "4": 1, "3": 0, "2": 0, "1": 0}


def test_removing_a_review_removes_its_contribution(db):
    product_id = add_product(db, "Baume", "10 TND", add_category(db, "Lèvres"))
    add_review(db, product_id, 5)
    add_review(db, product_id, 2)
    target = add_review(db, product_id, 3)
    before = update_product_rating(db, product_id)

    db["review"].update_one({"_id": target}, {"$set": {"status": "rejected"}})
    after = update_product_rating(db, product_id)

    assert before.total_reviews - after.total_reviews == 1
    assert weighted_sum(before) - weighted_sum(after) == 3
    assert after.average_rating == 3.5


def test_last_review_removed_resets_product(db):
    product_id = add_product(db, "Baume", "10 TND", add_category(db, "Lèvres"), average_rating=4.0, total_reviews=1)
    review_id = add_review(db, product_id, 4)
    update_product_rating(db, product_id)
    db["review"].delete_one({"_id": review_id})

    update_product_rating(db, product_id)

    product = db["product"].find_one({"_id": ObjectId(product_id)})
    assert product["average_rating"] == 0
    assert product["total_reviews"] == 0
    assert set(product["rating_breakdown"].values()) == {0}


def test_recompute_overwrites_drifted_fields(db):
    product_id = add_product(db, "Baume", "10 TND", add_category(db, "Lèvres"), average_rating=1.0, total_reviews=40)
    add_review(db, product_id, 4)

    update_product_rating(db, product_id)

    product = db["product"].find_one({"_id": ObjectId(product_id)})
    assert product["total_reviews"] == 1
    assert product["average_rating"] == 4.0


def test_missing_product_is_a_noop(db):
    ghost = str(ObjectId())
    add_review(db, ghost, 5)

    assert update_product_rating(db, ghost) is None
    assert db["product"].count_documents({}) == 0


def test_malformed_product_id_is_a_noop(db):
    assert update_product_rating(db, "not-an-id") is None


def test_null_ratings_are_skipped():
    stats = compute_rating_stats([5, None, 4])
    assert stats.total_reviews == 2
    assert stats.average_rating == 4.5


def test_review_with_null_rating_does_not_break_recompute(db):
    category_id = add_category(db, "Visage")
    product_id = add_product(db, "Crème", "39.900 TND", category_id)
    add_review(db, product_id, 5)
    add_review(db, product_id, None)

    stats = update_product_rating(db, product_id)

    assert stats.total_reviews == 1
    assert stats.average_rating == 5.0
