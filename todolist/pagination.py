# pagination.py — Page/sort/search/filter query parameters and page metadata
#
# Accepted query parameters:
#   page, size (alias page_size)
#   sort=field:dir,field:dir   or   sort_by=field&order=asc|desc
#   search=<term>
#   filter[field][op]=value    or   filter[field]=value (equality)
#   filter=<json>              {"field": value} | {"field": {"op": value}}
#                              | [{"field": ..., "operator": ..., "value": ...}]

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from todolist.errors import ValidationError
from todolist.queries import Filter, FilterOperator, QueryOptions, SortField

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 25
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100

_FILTER_PARAM = re.compile(r"^filter\[([^\]]+)\](?:\[([^\]]+)\])?$")


@dataclass
class PageRequest:
    page: int = DEFAULT_PAGE
    size: int = DEFAULT_PAGE_SIZE
    sort: List[SortField] = field(default_factory=list)
    search: str = ""
    filters: List[Filter] = field(default_factory=list)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.page < 1:
            raise ValidationError("INVALID_PAGINATION", "page must be greater than zero", field="page")
        if not MIN_PAGE_SIZE <= self.size <= MAX_PAGE_SIZE:
            raise ValidationError(
                "INVALID_PAGINATION",
                f"size must be between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}",
                field="size",
            )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    def to_query_options(self) -> QueryOptions:
        return QueryOptions(limit=self.size, offset=self.offset, sort=tuple(self.sort))


@dataclass(frozen=True)
class PageResult:
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.total <= 0 or self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def to_dict(self) -> Dict[str, int]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "total_pages": self.total_pages,
        }

    def headers(self) -> Dict[str, str]:
        return {
            "X-Total-Count": str(self.total),
            "X-Total-Pages": str(self.total_pages),
            "X-Current-Page": str(self.page),
            "X-Page-Size": str(self.page_size),
        }


# ============================================================
# PARSING
# ============================================================

def parse_sort_order(raw: Optional[str]) -> bool:
    """Return True for descending."""
    text = (raw or "asc").strip().lower()
    if text in ("asc", "ascending", "1"):
        return False
    if text in ("desc", "descending", "-1"):
        return True
    raise ValidationError("INVALID_SORT", f"invalid sort order: {raw}", field="order")


def parse_sort(raw: str) -> List[SortField]:
    fields = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if part.startswith("-"):
            fields.append(SortField(part[1:], True))
            continue
        name, _, direction = part.partition(":")
        fields.append(SortField(name.strip(), parse_sort_order(direction or "asc")))
    return fields


def _int_param(raw: Optional[str], default: int, name: str) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError("INVALID_PAGINATION", f"{name} must be an integer", field=name) from None
    if value < 0:
        raise ValidationError("INVALID_PAGINATION", f"{name} cannot be negative", field=name)
    return value


def parse_filter_json(raw: str) -> List[Filter]:
    try:
        data = json.loads(raw)
    except ValueError:
        raise ValidationError("INVALID_FILTER", "filter must be valid JSON", field="filter") from None

    filters = []
    if isinstance(data, list):
        for item in data:
            if not isinstance(item, dict) or "field" not in item:
                raise ValidationError("INVALID_FILTER", "filter entries need a field", field="filter")
            filters.append(Filter(item["field"], item.get("operator", "="), item.get("value")))
    elif isinstance(data, dict):
        for name, spec in data.items():
            if isinstance(spec, dict):
                for op, value in spec.items():
                    filters.append(Filter(name, op, value))
            else:
                filters.append(Filter(name, FilterOperator.EQ, spec))
    else:
        raise ValidationError("INVALID_FILTER", "filter must be an object or a list", field="filter")
    return filters


def parse_page_request(params: Mapping[str, Any]) -> PageRequest:
    """Build a PageRequest from query parameters (starlette QueryParams or a dict)."""
    items = params.multi_items() if hasattr(params, "multi_items") else list(params.items())

    page = _int_param(params.get("page"), DEFAULT_PAGE, "page")
    size = _int_param(params.get("size") or params.get("page_size"), DEFAULT_PAGE_SIZE, "size")

    sort: List[SortField] = []
    if params.get("sort"):
        sort = parse_sort(params["sort"])
    elif params.get("sort_by"):
        sort = [SortField(params["sort_by"].strip(), parse_sort_order(params.get("order")))]

    filters: List[Filter] = []
    for key, value in items:
        match = _FILTER_PARAM.match(key)
        if match:
            name, op = match.group(1), match.group(2) or "="
            filters.append(Filter(name, op, value))
    if params.get("filter"):
        filters.extend(parse_filter_json(params["filter"]))

    return PageRequest(
        page=page,
        size=size,
        sort=sort,
        search=(params.get("search") or "").strip(),
        filters=filters,
    )
