"""Tests for monthly expense generation."""

import string
from datetime import date, datetime, timezone

import pytest

from expense_sync.models import Periodicity
from expense_sync.reconcile import (
    add_one_month,
    generate_occurrences,
    is_same_month,
    new_expense_id,
)
from expense_sync.reconcile.recurring import find_anchor, find_templates

NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)
TODAY = NOW.date()

MONTHLY = Periodicity.MONTHLY


class TestHelpers:
    """Tests for date and id helpers."""

    @pytest.mark.parametrize("value,expected", [
        (date(2024, 1, 10), date(2024, 2, 10)),
        (date(2024, 12, 5), date(2025, 1, 5)),
        (date(2024, 1, 31), date(2024, 2, 29)),
        (date(2023, 1, 31), date(2023, 2, 28)),
        (date(2024, 3, 31), date(2024, 4, 30)),
    ])
    def test_add_one_month(self, value, expected):
        """Test that month ends are clamped to the next month's last day."""
        assert add_one_month(value) == expected

    def test_is_same_month(self):
        assert is_same_month(date(2024, 3, 1), date(2024, 3, 31))
        assert not is_same_month(date(2024, 3, 1), date(2023, 3, 1))
        assert not is_same_month(date(2024, 3, 1), date(2024, 4, 1))

    def test_new_expense_id_shape(self):
        ids = {new_expense_id() for _ in range(200)}
        assert len(ids) == 200
        for expense_id in ids:
            assert len(expense_id) == 8
            assert expense_id[0] in string.ascii_letters
            assert expense_id.isalnum()


class TestAnchor:
    """Tests for anchor and template selection."""

    def test_anchor_ignores_future_and_one_time(self, make_expense):
        past = make_expense(id="p", date=date(2024, 2, 1), periodicity=MONTHLY)
        future = make_expense(id="f", date=date(2024, 4, 1), periodicity=MONTHLY)
        one_time = make_expense(id="o", date=date(2024, 3, 1))
        assert find_anchor([past, future, one_time], TODAY) == past

    def test_anchor_includes_deleted(self, make_expense):
        """Test that a deleted monthly record still marks its month as done."""
        deleted = make_expense(id="d", date=date(2024, 3, 1), periodicity=MONTHLY, deleted=True)
        older = make_expense(id="o", date=date(2024, 2, 1), periodicity=MONTHLY)
        assert find_anchor([older, deleted], TODAY) == deleted
        assert find_templates([older, deleted], TODAY) == []

    def test_anchor_none_without_monthly(self, make_expense):
        assert find_anchor([make_expense()], TODAY) is None

    def test_templates_are_anchor_month_basket(self, make_expense):
        rent = make_expense(id="r", date=date(2024, 2, 1), periodicity=MONTHLY)
        phone = make_expense(id="p", date=date(2024, 2, 20), periodicity=MONTHLY)
        gone = make_expense(id="g", date=date(2024, 2, 5), periodicity=MONTHLY, deleted=True)
        older = make_expense(id="o", date=date(2024, 1, 20), periodicity=MONTHLY)
        templates = find_templates([rent, phone, gone, older], TODAY)
        assert templates == [rent, phone]


class TestGenerateOccurrences:
    """Tests for generate_occurrences."""

    def test_generates_next_month_copy(self, make_expense):
        template = make_expense(
            id="rent",
            date=date(2024, 2, 10),
            amount="-800",
            category="housing",
            label="rent",
            periodicity=MONTHLY,
            checked=True,
        )
        generated = generate_occurrences([template], now=NOW)

        assert len(generated) == 1
        occurrence = generated[0]
        assert occurrence.id != "rent"
        assert len(occurrence.id) == 8
        assert occurrence.date == date(2024, 3, 10)
        assert occurrence.amount == template.amount
        assert occurrence.category == "housing"
        assert occurrence.label == "rent"
        assert occurrence.periodicity == MONTHLY
        assert occurrence.checked is False
        assert occurrence.deleted is False
        assert occurrence.updated_at == NOW

    def test_rerun_after_persisting_is_empty(self, make_expense):
        template = make_expense(id="rent", date=date(2024, 2, 10), periodicity=MONTHLY)
        generated = generate_occurrences([template], now=NOW)
        assert generate_occurrences([template, *generated], now=NOW) == []

    def test_catches_up_one_month_per_run(self, make_expense):
        """Test that a ledger two months behind needs two runs."""
        template = make_expense(id="rent", date=date(2024, 1, 10), periodicity=MONTHLY)

        first = generate_occurrences([template], now=NOW)
        assert [e.date for e in first] == [date(2024, 2, 10)]

        second = generate_occurrences([template, *first], now=NOW)
        assert [e.date for e in second] == [date(2024, 3, 10)]

        assert generate_occurrences([template, *first, *second], now=NOW) == []

    def test_generated_date_may_be_after_today(self, make_expense):
        template = make_expense(id="rent", date=date(2024, 2, 28), periodicity=MONTHLY)
        generated = generate_occurrences([template], now=NOW)
        assert generated[0].date == date(2024, 3, 28)

    def test_nothing_due_this_month(self, make_expense):
        current = make_expense(id="rent", date=date(2024, 3, 1), periodicity=MONTHLY)
        assert generate_occurrences([current], now=NOW) == []

    def test_no_monthly_records(self, make_expense):
        assert generate_occurrences([make_expense(date=date(2024, 1, 1))], now=NOW) == []
        assert generate_occurrences([], now=NOW) == []

    def test_explicit_today_overrides_now(self, make_expense):
        template = make_expense(id="rent", date=date(2024, 2, 10), periodicity=MONTHLY)
        assert generate_occurrences([template], now=NOW, today=date(2024, 2, 20)) == []

    def test_naive_now_is_utc(self, make_expense):
        template = make_expense(id="rent", date=date(2024, 2, 10), periodicity=MONTHLY)
        generated = generate_occurrences([template], now=datetime(2024, 3, 15, 12, 0, 0))
        assert generated[0].updated_at == NOW

    def test_generated_ids_are_distinct(self, make_expense):
        basket = [
            make_expense(id=f"t{i}", date=date(2024, 2, i + 1), periodicity=MONTHLY)
            for i in range(5)
        ]
        generated = generate_occurrences(basket, now=NOW)
        assert len({e.id for e in generated}) == 5
