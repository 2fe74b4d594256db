"""Tests for tag repository."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from tagstash.models.image import Image
from tagstash.models.tag import Tag


def test_ensure_creates_missing_in_order(db_session: Session) -> None:
    from tagstash.db.repositories.tag import TagRepository

    repo = TagRepository(db_session)
    repo.add(Tag(name="dog"))

    tags = repo.ensure(["cat", "dog", "bird"])

    assert [t.name for t in tags] == ["cat", "dog", "bird"]
    assert all(t.id is not None for t in tags)
    assert len(repo.list_all()) == 3


def test_ensure_reuses_existing(db_session: Session) -> None:
    from tagstash.db.repositories.tag import TagRepository

    repo = TagRepository(db_session)
    first = repo.ensure(["cat"])
    second = repo.ensure(["cat"])

    assert first[0].id == second[0].id


def test_duplicate_name_rejected(db_session: Session) -> None:
    """Tag names are unique."""
    from tagstash.db.repositories.tag import TagRepository

    repo = TagRepository(db_session)
    repo.add(Tag(name="cat"))
    with pytest.raises(IntegrityError):
        repo.add(Tag(name="cat"))


def test_list_all_alphabetical(db_session: Session) -> None:
    from tagstash.db.repositories.tag import TagRepository

    repo = TagRepository(db_session)
    repo.ensure(["zebra", "ant", "moth"])

    assert [t.name for t in repo.list_all()] == ["ant", "moth", "zebra"]


def test_attach_skips_existing_links(db_session: Session) -> None:
    from tagstash.db.repositories.tag import TagRepository

    repo = TagRepository(db_session)
    image = Image(filename="a.jpg", storage_path="a.jpg")
    db_session.add(image)
    db_session.flush()
    cat, dog = repo.ensure(["cat", "dog"])

    assert repo.attach(image.id, [cat.id]) == 1
    assert repo.attach(image.id, [cat.id, dog.id, dog.id]) == 1
    assert repo.attach(image.id, []) == 0
    assert repo.names_for_images([image.id])[image.id] == ["cat", "dog"]


def test_names_for_images(db_session: Session) -> None:
    from tagstash.db.repositories.tag import TagRepository

    repo = TagRepository(db_session)
    images = [Image(filename=n, storage_path=n) for n in ("a", "b", "c")]
    for image in images:
        db_session.add(image)
    db_session.flush()
    red, blue = repo.ensure(["red", "blue"])
    repo.attach(images[0].id, [red.id, blue.id])
    repo.attach(images[1].id, [red.id])

    names = repo.names_for_images([i.id for i in images])

    assert names[images[0].id] == ["blue", "red"]
    assert names[images[1].id] == ["red"]
    assert names[images[2].id] == []
    assert repo.names_for_images([]) == {}
