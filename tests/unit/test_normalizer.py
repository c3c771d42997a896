"""
Unit tests for system field normalization.
"""

from datetime import datetime, timedelta, timezone

import pytest

from mdb_guard.database.normalizer import (coerce_date, prepare_insert_item,
                                           prepare_update_item)
from mdb_guard.exceptions import (ArgumentError, InvalidSyntaxError,
                                  NormalizationError)

UTC_PLUS_2 = timezone(timedelta(hours=2))

# (_createdDate, _updatedDate) pairs where the update is earlier
UPDATED_BEFORE_CREATED = [
    ("2024-05-01T12:00:00Z", "2024-05-01T11:59:59Z"),
    ("2024-05-01T12:00:00+00:00", "2024-05-01T13:00:00+02:00"),
    (datetime(2024, 5, 1, 12, tzinfo=timezone.utc), "2024-05-01T11:00:00Z"),
    ("2024-05-01T12:00:00Z", datetime(2024, 5, 1, 11, 59)),
    (datetime(2024, 5, 1, 12, tzinfo=timezone.utc), datetime(2024, 5, 1, 13, tzinfo=UTC_PLUS_2)),
]

@pytest.mark.unit
class TestCoerceDate:
    """Test date coercion."""

    def test_naive_datetime_is_utc(self):
        """Test that naive datetimes are taken as UTC."""
        value = coerce_date(datetime(2024, 5, 1, 12, 0), "_createdDate")
        assert value == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_iso_string(self):
        """Test ISO strings with a Z suffix and with an offset."""
        assert coerce_date("2024-05-01T12:00:00Z", "_createdDate") == datetime(
            2024, 5, 1, 12, 0, tzinfo=timezone.utc
        )
        assert coerce_date("2024-05-01T14:00:00+02:00", "_createdDate") == datetime(
            2024, 5, 1, 12, 0, tzinfo=timezone.utc
        )

    def test_invalid_string(self):
        """Test that an unparseable string is rejected."""
        with pytest.raises(NormalizationError, match="not a valid date"):
            coerce_date("yesterday", "_createdDate")

    def test_invalid_type(self):
        """Test that a number is rejected."""
        with pytest.raises(ArgumentError, match="Expected a datetime"):
            coerce_date(1700000000, "_updatedDate")


@pytest.mark.unit
class TestPrepareInsertItem:
    """Test insert normalization."""

    def test_fills_system_fields(self):
        """Test that every system field is generated."""
        item = prepare_insert_item({"name": "A"}, "User", "u1")
        assert isinstance(item["_id"], str) and item["_id"]
        assert item["_createdDate"].tzinfo is not None
        assert item["_updatedDate"] == item["_createdDate"]
        assert item["_owner"] == "u1"

    def test_generated_ids_are_unique(self):
        """Test that two items receive distinct ids."""
        first = prepare_insert_item({}, "User", "u1")
        second = prepare_insert_item({}, "User", "u1")
        assert first["_id"] != second["_id"]

    def test_keeps_supplied_values(self):
        """Test that valid supplied values are kept."""
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        item = prepare_insert_item(
            {"_id": "custom", "_createdDate": created, "_owner": "other"}, "User", "u1"
        )
        assert item["_id"] == "custom"
        assert item["_createdDate"] == created
        assert item["_owner"] == "other"

    def test_system_mode_owner(self):
        """Test that System mode always stamps the system owner."""
        item = prepare_insert_item({"_owner": "u2"}, "System", None)
        assert item["_owner"] == "system"

    @pytest.mark.parametrize("owner", ["system", "SYSTEM", "System"])
    def test_rejects_system_owner_in_user_mode(self, owner):
        """Test that User mode cannot claim the system owner."""
        with pytest.raises(NormalizationError, match='cannot be set to the value "System"'):
            prepare_insert_item({"_owner": owner}, "User", "u1")

    def test_rejects_bad_id(self):
        """Test id type and emptiness checks."""
        with pytest.raises(ArgumentError, match="expected to be a string"):
            prepare_insert_item({"_id": 5}, "User", "u1")
        with pytest.raises(NormalizationError, match="cannot be an empty string"):
            prepare_insert_item({"_id": ""}, "User", "u1")

    def test_rejects_bad_owner(self):
        """Test owner type and emptiness checks."""
        with pytest.raises(ArgumentError, match="should be a string"):
            prepare_insert_item({"_owner": 3}, "User", "u1")
        with pytest.raises(NormalizationError, match="cannot be an empty string"):
            prepare_insert_item({"_owner": ""}, "User", "u1")

    def test_updated_before_created(self):
        """Test that _updatedDate cannot precede _createdDate."""
        created = datetime(2024, 1, 2, tzinfo=timezone.utc)
        with pytest.raises(NormalizationError, match="cannot be before"):
            prepare_insert_item(
                {"_createdDate": created, "_updatedDate": created - timedelta(days=1)},
                "User",
                "u1",
            )

    @pytest.mark.parametrize("created,updated", UPDATED_BEFORE_CREATED)
    def test_updated_before_created_any_form(self, created, updated):
        """Test the ordering check across ISO strings, datetimes and offsets."""
        with pytest.raises(NormalizationError, match="cannot be before"):
            prepare_insert_item({"_createdDate": created, "_updatedDate": updated}, "User", "u1")

    def test_same_instant_in_other_offset(self):
        """Test that equal instants written in different offsets are accepted."""
        item = prepare_insert_item(
            {"_createdDate": "2024-05-01T12:00:00Z", "_updatedDate": "2024-05-01T14:00:00+02:00"},
            "User",
            "u1",
        )
        assert item["_updatedDate"] == item["_createdDate"]


@pytest.mark.unit
class TestPrepareUpdateItem:
    """Test update normalization."""

    def test_requires_id(self):
        """Test that an update without _id is a syntax error."""
        with pytest.raises(InvalidSyntaxError, match='missing its "_id" field'):
            prepare_update_item({"name": "A"})

    def test_strips_immutable_fields(self):
        """Test that _createdDate and _owner are removed and _updatedDate refreshed."""
        before = datetime.now(timezone.utc)
        item = prepare_update_item(
            {"_id": "a", "_createdDate": before, "_owner": "someone", "name": "B"}
        )
        assert "_createdDate" not in item
        assert "_owner" not in item
        assert item["_updatedDate"] >= before
        assert item["name"] == "B"
