"""
Data providers: paginated, sorted query results for listings and search.

`ActiveDataProvider` wraps an `ActiveQuery` and applies `Pagination` and
`Sort` read from request parameters:

    provider = ActiveDataProvider(
        Post.find(),
        pagination=Pagination(page_size=20),
        sort=Sort(attributes=["title", "created_at"]),
        params={"page": "2", "sort": "-created_at"},
    )
    provider.models      # records on page 2
    provider.total_count # rows matching the query

Dependencies: cti_record.records
System role: Listing layer between search models and queries
"""

from collections.abc import Mapping
from typing import Any

from cti_record.records.active_query import ActiveQuery


class Pagination:
    """
    Page window over a result set.

    Pages are 1-based in request parameters and 0-based in `page`.
    """

    page_param = "page"
    page_size_param = "per-page"

    def __init__(self, page: int = 0, page_size: int = 20, page_size_limit: tuple[int, int] = (1, 50)) -> None:
        self.page = page
        self.page_size = page_size
        self.page_size_limit = page_size_limit
        self.total_count = 0

    def apply_params(self, params: Mapping[str, Any]) -> None:
        if self.page_size_param in params:
            low, high = self.page_size_limit
            self.page_size = min(max(_to_int(params[self.page_size_param], self.page_size), low), high)
        if self.page_param in params:
            self.page = max(_to_int(params[self.page_param], 1) - 1, 0)

    @property
    def page_count(self) -> int:
        if self.page_size < 1:
            return 1 if self.total_count > 0 else 0
        return (self.total_count + self.page_size - 1) // self.page_size

    @property
    def offset(self) -> int:
        return self.page * self.page_size

    @property
    def limit(self) -> int | None:
        return self.page_size if self.page_size > 0 else None

    def clamp(self) -> None:
        """Move the current page into range once the total is known."""
        if self.page_count and self.page >= self.page_count:
            self.page = self.page_count - 1


class Sort:
    """
    Sort order parsed from a "sort" parameter such as "-created_at,title".

    Only names listed in `attributes` are accepted.
    """

    sort_param = "sort"

    def __init__(self, attributes: Any = (), default_order: Mapping[str, bool] | None = None) -> None:
        self.attributes = list(attributes)
        self.default_order = dict(default_order or {})
        self._orders: dict[str, bool] | None = None

    def apply_params(self, params: Mapping[str, Any]) -> None:
        value = params.get(self.sort_param)
        if not value:
            return
        orders = {}
        for part in str(value).split(","):
            name = part.strip()
            descending = name.startswith("-")
            name = name.lstrip("-")
            if name in self.attributes:
                orders[name] = descending
        self._orders = orders

    @property
    def orders(self) -> dict[str, bool]:
        """Attribute names mapped to True for descending order."""
        return self.default_order if self._orders is None else self._orders


class ActiveDataProvider:
    """
    Query results with pagination and sorting.

    Attributes:
        query: Query to run; page limit, offset and sort order are applied
            to it when models are prepared
        pagination: Pagination or None to load every row
        sort: Sort or None to keep the query order
        params: Request parameters for pagination and sort
    """

    def __init__(
        self,
        query: ActiveQuery,
        pagination: Pagination | None = None,
        sort: Sort | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        self.query = query
        self.pagination = pagination
        self.sort = sort
        self.params = dict(params or {})
        self._models: list[Any] | None = None
        self._total_count: int | None = None

    def prepare(self, force: bool = False) -> None:
        """Run the count and page queries unless already done."""
        if self._models is not None and not force:
            return
        if self.sort is not None:
            self.sort.apply_params(self.params)
        self._total_count = self.query.count()

        if self.pagination is not None:
            self.pagination.apply_params(self.params)
            self.pagination.total_count = self._total_count
            self.pagination.clamp()
            self.query.limit(self.pagination.limit).offset(self.pagination.offset)
        if self.sort is not None and self.sort.orders:
            self.query.order_by({name: "desc" if desc else "asc" for name, desc in self.sort.orders.items()})

        models = self.query.all()
        self._models = list(models.values()) if isinstance(models, dict) else models

    @property
    def models(self) -> list[Any]:
        self.prepare()
        return self._models

    @property
    def total_count(self) -> int:
        if self._total_count is None:
            self._total_count = self.query.count()
        return self._total_count

    @property
    def count(self) -> int:
        """Number of models on the current page."""
        return len(self.models)

    @property
    def keys(self) -> list[Any]:
        keys = self.query.model_class.primary_key()
        if self.query.is_as_array:
            return [model[keys[0]] if len(keys) == 1 else {key: model[key] for key in keys} for model in self.models]
        return [model.get_primary_key() for model in self.models]


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
