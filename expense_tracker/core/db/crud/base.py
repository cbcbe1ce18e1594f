from typing import (
    Any,
    TypeVar,
    Generic,
    Type,
    Sequence,
    Callable,
)

from sqlalchemy import (
    SQLColumnExpression,
    and_,
    update as sa_update,
    delete as sa_delete,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import Delete, Update

from expense_tracker.core.exceptions.types import ConflictException, DatabaseException

T = TypeVar("T")


class BaseDB(Generic[T]):
    def __init__(self, model: Type[T]):
        self.model = model

    async def _finish(self, session: AsyncSession, commit_self: bool) -> None:
        if commit_self:
            await session.commit()
        else:
            await session.flush()

    async def get_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        order_by: list[Any] | None = None,
        options: list[Any] = [],
    ) -> Sequence[T]:
        """
        Asynchronously retrieves records of the model that match the given conditions.

        Args:
            session (AsyncSession): The asynchronous database session to use for the query.
            conditions (list[SQLColumnExpression]): SQLAlchemy expressions to filter the query.
            order_by (list[Any] | None, optional): Columns/expressions to order by.
            options (list[Any], optional): SQLAlchemy loader options (e.g., selectinload).

        Returns:
            Sequence[T]: A sequence containing instances of the model that match the conditions.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = select(self.model).options(*options).where(and_(*conditions))
            if order_by:
                stmt = stmt.order_by(*order_by)
            result = await session.execute(stmt)
            return result.scalars().all()
        except (SQLAlchemyError, ValueError) as e:
            raise DatabaseException(
                f"Error retrieving {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def get_one_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        options: list[Any] = [],
    ) -> T | None:
        """
        Asynchronously retrieves a single record of the model that matches the given conditions.

        Args:
            session (AsyncSession): The asynchronous database session to use for the query.
            conditions (list[SQLColumnExpression]): SQLAlchemy expressions to filter the query.
            options (list[Any], optional): SQLAlchemy loader options (e.g., selectinload).

        Returns:
            T | None: An instance of the model if found, otherwise None.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt = select(self.model).options(*options).where(and_(*conditions))
            result = await session.execute(stmt)
            return result.scalars().first()
        except (SQLAlchemyError, ValueError) as e:
            raise DatabaseException(
                f"Error retrieving one {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def create(
        self,
        session: AsyncSession,
        data: dict,
        validate: Callable[[dict], dict] | None = None,
        commit_self: bool = True,
    ) -> T:
        """
        Asynchronously creates and persists a new instance of the model using the provided data.

        A unique-constraint violation rolls the session back and is reported
        as a conflict, since it means a concurrent writer got there first.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use for database operations.
            data (dict): A dictionary of fields and values to initialize the model instance.
            validate (Callable[[dict], dict] | None, optional): Validates or transforms the input
                data before model instantiation. Defaults to None.
            commit_self (bool, optional): If True, commits the transaction; if False, only
                flushes the session. Defaults to True.

        Returns:
            T: The newly created and persisted model instance.

        Raises:
            ConflictException: If a unique constraint is violated.
            DatabaseException: If an error occurs while creating the model instance or committing the transaction.
        """
        if validate:
            data = validate(data)

        try:
            obj = self.model(**data)
            session.add(obj)
            await self._finish(session, commit_self)
            await session.refresh(obj)
            return obj
        except IntegrityError as e:
            await session.rollback()
            raise ConflictException(
                f"{self.model.__name__} already exists."
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error creating {self.model.__name__}: {str(e)}"
            ) from e

    async def update_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        updates: dict,
        commit_self: bool = True,
    ) -> int:
        """
        Asynchronously updates records that match the given conditions with the provided updates.

        The conditions are evaluated by the store in the same statement as the
        write, so they can be used as a compare-and-swap guard.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use for the update operation.
            conditions (list[SQLColumnExpression]): SQLAlchemy expressions selecting the records.
            updates (dict): The fields and their new values.
            commit_self (bool, optional): If True, commits the transaction after the update;
                otherwise, flushes the session. Defaults to True.

        Returns:
            int: The number of records updated.

        Raises:
            DatabaseException: If an error occurs while updating the records or committing the transaction.
        """
        try:
            stmt: Update = (
                sa_update(self.model)
                .where(and_(*conditions))
                .values(**updates)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except IntegrityError as e:
            await session.rollback()
            raise ConflictException(
                f"{self.model.__name__} update conflicts with an existing record."
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error updating {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e

    async def delete_by_conditions(
        self,
        session: AsyncSession,
        conditions: list[SQLColumnExpression],
        commit_self: bool = True,
    ) -> int:
        """
        Asynchronously deletes records that match the given conditions.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session to use for the delete operation.
            conditions (list[SQLColumnExpression]): SQLAlchemy expressions selecting the records.
            commit_self (bool, optional): If True, commits the transaction after the delete;
                otherwise, flushes the session. Defaults to True.

        Returns:
            int: The number of records deleted.

        Raises:
            DatabaseException: If an error occurs while deleting the records or committing the transaction.
        """
        try:
            stmt: Delete = (
                sa_delete(self.model)
                .where(and_(*conditions))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise DatabaseException(
                f"Error deleting {self.model.__name__} with conditions {conditions}: {str(e)}"
            ) from e
