"""
Module: journey_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/ DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never
      ORM model instances.
"""

from abc import ABC
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from journey_kernel.db.base import Base
from journey_kernel.domain.dtos import PagedResult, clamp_page

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session

    def _paginate(self, stmt: Select, page: int, size: int) -> PagedResult[Any]:
        """Run ``stmt`` for one page and count its full result set.

        ``stmt`` must select a single ORM entity with a ``to_dto`` method
        and carry its own ORDER BY.
        """
        page, size = clamp_page(page, size)
        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.limit(size).offset((page - 1) * size)
        ).scalars().all()
        return PagedResult(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            size=size,
        )
