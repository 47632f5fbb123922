# app/core/pagination.py
"""
Shared pagination for list endpoints: page/size with totals, or keyset
cursors for feeds ordered by creation time.
"""
from typing import TypeVar, Generic, List, Optional, Dict, Any, Type, Sequence
from pydantic import BaseModel, ConfigDict, Field, computed_field
from sqlalchemy import select, func, or_, Select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import Query as QueryParam, Request
from starlette.datastructures import URL
from math import ceil

from app.exceptions.domain import BadRequestError

T = TypeVar('T')

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def escape_like(value: str) -> str:
    """Treat LIKE wildcards in user input as literal characters"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PaginationParams(BaseModel):
    """Base pagination parameters used across all endpoints"""
    page: int = Field(1, ge=1, description="Page number (1-indexed)")
    size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page")
    sort_by: Optional[str] = Field(None, description="Field to sort by")
    sort_order: str = Field("desc", pattern="^(asc|desc)$", description="Sort order")
    search: Optional[str] = Field(None, description="Search term")

    @computed_field
    @property
    def offset(self) -> int:
        """Calculate offset for database query"""
        return (self.page - 1) * self.size


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Generic paginated response that all list endpoints use
    """
    model_config = ConfigDict(from_attributes=True)

    items: List[T]
    total: int
    page: int
    size: int
    pages: int
    has_next: bool
    has_prev: bool
    links: Optional[Dict[str, Optional[str]]] = None


class CursorPage(BaseModel, Generic[T]):
    items: List[T]
    next_cursor: Optional[str] = None


class AutoPaginator:
    """
    Paginates any SQLAlchemy select with filters, search and whitelisted sorting
    """

    @staticmethod
    async def paginate(
            db: AsyncSession,
            model: Type[Any],
            params: PaginationParams,
            filters: Optional[Dict[str, Any]] = None,
            search_fields: Optional[List[str]] = None,
            sortable_fields: Optional[Sequence[str]] = None,
            base_query: Optional[Select] = None,
            request: Optional[Request] = None
    ) -> PaginatedResponse:
        """
        Args:
            db: Database session
            model: SQLAlchemy model class
            params: Pagination parameters
            filters: Dictionary of field:value equality filters, None values skipped
            search_fields: Fields matched case-insensitively against params.search
            sortable_fields: Fields accepted in params.sort_by
            base_query: Optional base query to build upon
            request: FastAPI request for building links
        """
        query = base_query if base_query is not None else select(model)
        query = AutoPaginator.apply_filters(query, model, filters, params.search, search_fields)

        # Count before ordering and slicing
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        total = (await db.scalar(count_query)) or 0

        query = AutoPaginator.apply_sorting(query, model, params, sortable_fields)
        query = query.offset(params.offset).limit(params.size)

        result = await db.execute(query)
        items = list(result.scalars().all())

        pages = ceil(total / params.size) if total > 0 else 0

        links = None
        if request:
            links = AutoPaginator._build_links(request.url, params, pages)

        return PaginatedResponse(
            items=items,
            total=total,
            page=params.page,
            size=params.size,
            pages=pages,
            has_next=params.page < pages,
            has_prev=params.page > 1,
            links=links
        )

    @staticmethod
    def apply_filters(
            query: Select,
            model: Type[Any],
            filters: Optional[Dict[str, Any]] = None,
            search: Optional[str] = None,
            search_fields: Optional[List[str]] = None
    ) -> Select:
        if filters:
            for field, value in filters.items():
                if value is not None:
                    query = query.where(getattr(model, field) == value)

        if search and search_fields:
            pattern = f"%{escape_like(search.strip().lower())}%"
            query = query.where(or_(*[
                func.lower(getattr(model, field)).like(pattern, escape="\\") for field in search_fields
            ]))
        return query

    @staticmethod
    def apply_sorting(
            query: Select,
            model: Type[Any],
            params: PaginationParams,
            sortable_fields: Optional[Sequence[str]] = None
    ) -> Select:
        sort_by = params.sort_by or "created_at"
        if sortable_fields is not None and sort_by not in sortable_fields:
            raise BadRequestError(
                f"Cannot sort by '{sort_by}'. Allowed: {', '.join(sortable_fields)}"
            )
        order_column = getattr(model, sort_by)
        if params.sort_order == "desc":
            return query.order_by(order_column.desc(), model.id.desc())
        return query.order_by(order_column.asc(), model.id.asc())

    @staticmethod
    def _build_links(url: URL, params: PaginationParams, total_pages: int) -> Dict[str, Optional[str]]:
        """Page links that keep the request's other query parameters"""
        def page_url(page: int) -> str:
            return str(url.include_query_params(page=page, size=params.size))

        links = {
            "self": page_url(params.page),
            "first": None,
            "prev": None,
            "next": None,
            "last": None
        }

        if total_pages > 0:
            links["first"] = page_url(1)
            links["last"] = page_url(total_pages)

            if params.page > 1:
                links["prev"] = page_url(params.page - 1)

            if params.page < total_pages:
                links["next"] = page_url(params.page + 1)

        return links


# FastAPI dependency for pagination
def get_pagination(
        page: int = QueryParam(1, ge=1, description="Page number"),
        size: int = QueryParam(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"),
        sort_by: Optional[str] = QueryParam(None, description="Sort field"),
        sort_order: str = QueryParam("desc", pattern="^(asc|desc)$", description="Sort order"),
        search: Optional[str] = QueryParam(None, description="Search term")
) -> PaginationParams:
    """Dependency to extract pagination parameters"""
    return PaginationParams(
        page=page,
        size=size,
        sort_by=sort_by,
        sort_order=sort_order,
        search=search
    )
