"""Tests for the retrieval reconciler."""

from unittest.mock import MagicMock, patch

import pytest

from tagstash.core.retrieval import RANDOM_MAX_ATTEMPTS, Reconciler, ResolveMode
from tagstash.db.catalog import CatalogUnavailableError
from tagstash.models.image import Image


@pytest.fixture
def reconciler(catalog, blobs) -> Reconciler:
    return Reconciler(catalog, blobs)


def test_default_attempt_cap():
    assert RANDOM_MAX_ATTEMPTS == 50


def test_newest_returns_live_image(reconciler, store_image):
    store_image(["cat"], data=b"old")
    newest = store_image(["cat"], data=b"new")

    outcome = reconciler.resolve(["cat"])

    assert outcome.found
    assert outcome.image.id == newest.id
    assert outcome.path.read_bytes() == b"new"
    assert outcome.purged == []


def test_newest_skips_and_purges_stale(reconciler, catalog, blobs, store_image):
    """The newest record has no file: it is purged and the next one served."""
    live = store_image(["cat"], data=b"live")
    stale = store_image(["cat"], data=b"stale")
    blobs.delete(stale.storage_path)

    outcome = reconciler.resolve(["cat"], ResolveMode.newest)

    assert outcome.image.id == live.id
    assert outcome.purged == [stale.id]
    assert catalog.get_image(stale.id) is None
    assert [i.id for i in catalog.list_by_tags(["cat"])] == [live.id]


def test_newest_all_stale_purges_everything(reconciler, catalog, blobs, store_image):
    stale = [store_image(["cat"]) for _ in range(3)]
    for image in stale:
        blobs.delete(image.storage_path)

    outcome = reconciler.resolve(["cat"])

    assert not outcome.found
    assert sorted(outcome.purged) == sorted(i.id for i in stale)
    assert catalog.list_by_tags(["cat"]) == []


def test_empty_filter_matches_all(reconciler, store_image):
    image = store_image(["dog"])
    assert reconciler.resolve([]).image.id == image.id


def test_no_match(reconciler, store_image):
    store_image(["dog"])
    outcome = reconciler.resolve(["bird"])
    assert not outcome.found
    assert outcome.attempts == 0


def test_random_only_returns_matching_live(reconciler, catalog, blobs, store_image):
    """Random draws purge stale records and only ever return live ones."""
    live = store_image(["cat"])
    for _ in range(3):
        blobs.delete(store_image(["cat"]).storage_path)
    store_image(["dog"])

    for _ in range(5):
        outcome = reconciler.resolve(["cat"], ResolveMode.random)
        assert outcome.image.id == live.id

    assert [i.id for i in catalog.list_by_tags(["cat"])] == [live.id]


def test_random_accepts_plain_string_mode(reconciler, store_image):
    image = store_image(["cat"])
    assert reconciler.resolve(["cat"], "random").image.id == image.id


def test_random_exhaustion_returns_not_found(reconciler, catalog, blobs, store_image):
    image = store_image(["cat"])
    blobs.delete(image.storage_path)

    outcome = reconciler.resolve(["cat"], ResolveMode.random)

    assert not outcome.found
    assert outcome.purged == [image.id]
    assert outcome.attempts == 1


def test_random_attempts_are_capped(blobs):
    """When every draw is stale and the purge keeps failing, the cap stops the loop."""
    stale = Image(id=1, filename="gone.jpg", storage_path="gone.jpg")
    catalog = MagicMock()
    catalog.draw_random.return_value = [stale]
    catalog.delete_image.side_effect = CatalogUnavailableError("locked")
    reconciler = Reconciler(catalog, blobs, max_random_attempts=5)

    outcome = reconciler.resolve(["cat"], ResolveMode.random)

    assert not outcome.found
    assert outcome.attempts == 5
    assert catalog.draw_random.call_count == 5
    assert len(outcome.cleanup_errors) == 5


def test_purge_failure_does_not_fail_lookup(reconciler, catalog, blobs, store_image):
    live = store_image(["cat"])
    stale = store_image(["cat"])
    blobs.delete(stale.storage_path)

    with patch.object(catalog, "delete_image", side_effect=CatalogUnavailableError("locked")):
        outcome = reconciler.resolve(["cat"])

    assert outcome.image.id == live.id
    assert outcome.purged == [stale.id]
    assert any("locked" in e for e in outcome.cleanup_errors)


def test_failed_existence_check_skips_without_purging(reconciler, catalog, blobs, store_image):
    live = store_image(["cat"])
    broken = store_image(["cat"])
    real_exists = blobs.exists

    def exists(key):
        if key == broken.storage_path:
            raise PermissionError("denied")
        return real_exists(key)

    with patch.object(blobs, "exists", side_effect=exists):
        outcome = reconciler.resolve(["cat"])

    assert outcome.image.id == live.id
    assert outcome.purged == []
    assert catalog.get_image(broken.id) is not None
    assert outcome.cleanup_errors


def test_resolve_by_id_and_token(reconciler, catalog, blobs, store_image):
    image = store_image()

    assert reconciler.resolve_by_id(image.id).image.id == image.id
    assert reconciler.resolve_by_token(image.token).image.id == image.id
    assert not reconciler.resolve_by_id(9999).found
    assert not reconciler.resolve_by_token("nope").found

    blobs.delete(image.storage_path)
    outcome = reconciler.resolve_by_token(image.token)
    assert not outcome.found
    assert outcome.purged == [image.id]
    assert catalog.get_image(image.id) is None


def test_list_live_skips_without_purging(reconciler, catalog, blobs, store_image):
    first = store_image(["cat"])
    missing = store_image(["cat", "dog"])
    third = store_image(["dog"])
    blobs.delete(missing.storage_path)

    live = reconciler.list_live([])

    assert [entry.image.id for entry in live] == [third.id, first.id]
    assert live[0].tags == ["dog"]
    assert live[1].tags == ["cat"]
    assert catalog.get_image(missing.id) is not None


def test_list_live_filters_and_paginates(reconciler, store_image):
    store_image(["cat"])
    newest_cat = store_image(["cat"])
    store_image(["dog"])

    live = reconciler.list_live(["cat"], limit=1)

    assert [entry.image.id for entry in live] == [newest_cat.id]
