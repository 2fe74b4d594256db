"""Tests for base repository pattern."""

from sqlmodel import Session

from tagstash.models.tag import Tag


def test_repository_add(db_session: Session) -> None:
    """Should add entity and populate its generated id."""
    from tagstash.db.repositories.base import BaseRepository

    repo = BaseRepository(db_session, Tag)
    tag = repo.add(Tag(name="sunset"))

    assert tag.id is not None


def test_repository_get(db_session: Session) -> None:
    """Should get entity by id, None when absent."""
    from tagstash.db.repositories.base import BaseRepository

    repo = BaseRepository(db_session, Tag)
    tag = repo.add(Tag(name="beach"))
    db_session.commit()

    assert repo.get(tag.id).name == "beach"
    assert repo.get(9999) is None


def test_repository_update(db_session: Session) -> None:
    from tagstash.db.repositories.base import BaseRepository

    repo = BaseRepository(db_session, Tag)
    tag = repo.add(Tag(name="old"))
    tag.name = "new"
    repo.update(tag)
    db_session.commit()

    assert repo.get(tag.id).name == "new"


def test_repository_leaves_transaction_to_caller(db_session: Session) -> None:
    """Added rows disappear when the owning session rolls back."""
    from tagstash.db.repositories.base import BaseRepository

    repo = BaseRepository(db_session, Tag)
    repo.add(Tag(name="temp"))
    db_session.rollback()

    assert repo.count() == 0


def test_repository_count(db_session: Session) -> None:
    from tagstash.db.repositories.base import BaseRepository

    repo = BaseRepository(db_session, Tag)
    for name in ("x", "y", "z"):
        repo.add(Tag(name=name))

    assert repo.count() == 3
