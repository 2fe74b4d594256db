"""Base repository pattern for data access."""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

ModelT = TypeVar("ModelT", bound=SQLModel)


class BaseRepository(Generic[ModelT]):
    """Shared lookups over one SQLModel table with an integer primary key.

    Repositories never commit on their own; the Catalog owns the
    transaction and commits or rolls back once per operation.
    """

    def __init__(self, session: Session, model: Type[ModelT]):
        """Initialize repository with session and model type.

        Args:
            session: SQLModel session scoped to the current operation
            model: The table model this repository operates on
        """
        self.session = session
        self.model = model

    def get(self, id: int) -> Optional[ModelT]:
        """Get a row by primary key, None if absent."""
        return self.session.get(self.model, id)

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(self.model)).one()

    def add(self, entity: ModelT) -> ModelT:
        """Stage a new row and flush so its generated id is populated."""
        self.session.add(entity)
        self.session.flush()
        return entity

    def update(self, entity: ModelT) -> ModelT:
        self.session.add(entity)
        self.session.flush()
        return entity
