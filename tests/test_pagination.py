# tests/test_pagination.py — Query parameters, filters and page metadata
from datetime import datetime, timezone

import pytest

from todolist.errors import ValidationError
from todolist.pagination import PageRequest, PageResult, parse_page_request
from todolist.queries import (
    Filter, FilterOperator, QueryOptions, SortField, TodoFilterCriteria, bind_filters, TODO_FILTER_FIELDS,
)
from todolist.valueobjects import Priority, TodoStatus


class TestPageRequest:
    def test_defaults(self):
        page = parse_page_request({})
        assert (page.page, page.size, page.offset) == (1, 25, 0)
        assert page.sort == [] and page.filters == [] and page.search == ""

    def test_offset_and_options(self):
        page = parse_page_request({"page": "3", "size": "10"})
        options = page.to_query_options()
        assert (options.limit, options.offset) == (10, 20)

    def test_page_size_alias(self):
        assert parse_page_request({"page_size": "50"}).size == 50

    @pytest.mark.parametrize("params", [
        {"size": "101"}, {"size": "0"}, {"page": "0"}, {"page": "-1"}, {"page": "two"},
    ])
    def test_invalid(self, params):
        with pytest.raises(ValidationError) as exc:
            parse_page_request(params)
        assert exc.value.code == "INVALID_PAGINATION"

    def test_direct_construction_validates(self):
        with pytest.raises(ValidationError):
            PageRequest(page=0)


class TestSortParsing:
    def test_sort_list(self):
        page = parse_page_request({"sort": "priority:desc,-due_date,title"})
        assert page.sort == [
            SortField("priority", True), SortField("due_date", True), SortField("title", False),
        ]

    def test_sort_by_and_order(self):
        page = parse_page_request({"sort_by": "due_date", "order": "DESC"})
        assert page.sort == [SortField("due_date", True)]

    def test_bad_order(self):
        with pytest.raises(ValidationError) as exc:
            parse_page_request({"sort_by": "due_date", "order": "sideways"})
        assert exc.value.code == "INVALID_SORT"

    def test_options_reject_unknown_sort_field(self):
        options = QueryOptions(sort=(SortField("password", False),))
        with pytest.raises(ValidationError) as exc:
            options.validate({"title", "created_at"})
        assert exc.value.code == "INVALID_SORT"

    def test_default_ordering_is_newest_first(self):
        assert QueryOptions().sort_fields() == (SortField("created_at", True),)
        assert QueryOptions(order_by="title").sort_fields() == (SortField("title", False),)


class TestFilterParsing:
    def test_bracket_filters(self):
        page = parse_page_request({"filter[priority][gte]": "3", "filter[status]": "pending", "search": " report "})
        assert Filter("priority", ">=", "3") in page.filters
        assert Filter("status", "=", "pending") in page.filters
        assert page.search == "report"

    def test_json_filter_forms(self):
        page = parse_page_request({"filter": '{"status": "pending", "priority": {"in": "3,4"}}'})
        assert Filter("status", FilterOperator.EQ, "pending") in page.filters
        assert Filter("priority", FilterOperator.IN, ("3", "4")) in page.filters

        page = parse_page_request({"filter": '[{"field": "title", "operator": "like", "value": "rep"}]'})
        assert page.filters == [Filter("title", FilterOperator.LIKE, "rep")]

    @pytest.mark.parametrize("raw", ["{not json", "42", '[{"operator": "="}]'])
    def test_bad_json(self, raw):
        with pytest.raises(ValidationError) as exc:
            parse_page_request({"filter": raw})
        assert exc.value.code == "INVALID_FILTER"


class TestFilters:
    @pytest.mark.parametrize("raw, op", [
        ("eq", FilterOperator.EQ), ("<>", FilterOperator.NE), ("ge", FilterOperator.GTE),
        ("contains", FilterOperator.LIKE), ("nin", FilterOperator.NOT_IN), ("notnull", FilterOperator.IS_NOT_NULL),
    ])
    def test_aliases(self, raw, op):
        assert Filter("title", raw, "x").operator == op

    def test_unknown_operator(self):
        with pytest.raises(ValidationError) as exc:
            Filter("title", "approximately", "x")
        assert exc.value.code == "INVALID_FILTER"

    def test_between_needs_two_values(self):
        with pytest.raises(ValidationError):
            Filter("priority", "between", "1")
        assert Filter("priority", "between", "1,3").value == ("1", "3")

    def test_invalid_regex(self):
        with pytest.raises(ValidationError):
            Filter("title", "regex", "(")

    def test_matching(self):
        assert Filter("title", "like", "REP").matches("Write report")
        assert Filter("title", "regex", r"^Write\b").matches("Write report")
        assert Filter("due_date", "is_null").matches(None)
        assert not Filter("priority", ">", 2).matches(None)
        assert Filter("priority", "between", (2, 3)).matches(3)

    def test_bind_converts_values(self):
        bound = bind_filters(
            [Filter("priority", "in", "high,critical"), Filter("due_date", "<", "2024-03-15")],
            TODO_FILTER_FIELDS,
        )
        assert bound[0].value == (3, 4)
        assert bound[1].value == datetime(2024, 3, 15, tzinfo=timezone.utc)

    def test_bind_rejects_unknown_fields_and_values(self):
        with pytest.raises(ValidationError):
            bind_filters([Filter("password", "=", "x")], TODO_FILTER_FIELDS)
        with pytest.raises(ValidationError) as exc:
            bind_filters([Filter("status", "=", "done")], TODO_FILTER_FIELDS)
        assert exc.value.code == "INVALID_FILTER"


class TestCriteria:
    def test_normalises(self):
        criteria = TodoFilterCriteria(statuses=["pending"], priorities=["high"], tags=[" work ", ""], search_term="  x ")
        assert criteria.statuses == [TodoStatus.PENDING]
        assert criteria.priorities == [Priority.HIGH]
        assert criteria.tags == ["work"]
        assert criteria.search_term == "x"
        assert not criteria.has_user_filter()
        assert criteria.has_tag_filter() and criteria.has_search_term()


class TestPageResult:
    def test_metadata(self):
        result = PageResult(page=2, page_size=10, total=25)
        assert result.total_pages == 3
        assert result.has_next
        assert result.to_dict() == {"page": 2, "page_size": 10, "total": 25, "total_pages": 3}
        assert result.headers()["X-Total-Count"] == "25"

    def test_empty(self):
        result = PageResult(page=1, page_size=10, total=0)
        assert result.total_pages == 0
        assert not result.has_next
