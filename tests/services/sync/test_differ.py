"""
Tests for content-addressed change detection.
"""

import json

from schoolsync.models.records import CanonicalRecord
from schoolsync.services.sync.differ import dedupe_records, diff, fingerprint_payload, hash_record


class TestHashRecord:
    """Test record fingerprints."""

    def test_fingerprint_field_order(self):
        record = CanonicalRecord(sourced_id="1001", first_name="Jane", last_name="Doe", grade_level="7")

        assert fingerprint_payload(record) == (
            '{"id":"1001","fn":"Jane","ln":"Doe","gr":"7","hr":"","es":"","em":"","si":""}'
        )

    def test_hash_is_sha256_hex(self):
        digest = hash_record(CanonicalRecord(sourced_id="1"))

        assert len(digest) == 64
        assert digest == digest.lower()

    def test_non_hashed_fields_ignored(self, record_factory):
        record = record_factory("1", dob="2011-04-02", gender="F")
        other = record_factory("1")
        other.add_extra("Locker", "B-12")

        assert hash_record(record) == hash_record(other)

    def test_hashed_field_change_detected(self, record_factory):
        assert hash_record(record_factory("1", grade_level="7")) != hash_record(record_factory("1", grade_level="8"))

    def test_unicode_names_hash_as_utf8(self, record_factory):
        record = record_factory("1", "José", "Núñez")

        assert "José" in fingerprint_payload(record)


class TestDiff:
    """Test change detection against a prior hash index."""

    def test_first_run_everything_changed(self, sample_records):
        result = diff(sample_records, {})

        assert result.changed == sample_records
        assert set(result.new_hashes) == {"1001", "1002", "1003"}

    def test_second_run_is_idempotent(self, sample_records):
        first = diff(sample_records, {})

        second = diff(sample_records, first.new_hashes)

        assert second.changed == []
        assert not second.has_changes
        assert second.new_hashes == first.new_hashes

    def test_only_changed_records_returned(self, sample_records, record_factory):
        prior = diff(sample_records, {}).new_hashes
        updated = list(sample_records)
        updated[1] = record_factory("1002", "John", "Smith", grade_level="9")

        result = diff(updated, prior)

        assert [r.sourced_id for r in result.changed] == ["1002"]

    def test_duplicate_ids_keep_first_occurrence(self, record_factory):
        records = [
            record_factory("1001", home_room="101"),
            record_factory("1002", "John", "Smith"),
            record_factory("1001", home_room="204"),
        ]

        result = diff(records, {})

        assert [(r.sourced_id, r.home_room) for r in result.changed] == [("1001", "101"), ("1002", None)]
        assert result.new_hashes["1001"] == hash_record(records[0])

    def test_duplicate_ids_are_idempotent(self, record_factory):
        """Test that a roster listing a student twice settles after one run."""
        records = [record_factory("1001", home_room="101"), record_factory("1001", home_room="204")]

        first = diff(records, {})
        second = diff(records, first.new_hashes)

        assert second.changed == []

    def test_removed_ids_dropped_from_index(self, sample_records):
        prior = diff(sample_records, {}).new_hashes

        result = diff(sample_records[:1], prior)

        assert set(result.new_hashes) == {"1001"}

    def test_index_holds_no_personal_data(self, sample_records):
        """Test that the persisted index carries ids and digests only."""
        index = diff(sample_records, {}).new_hashes

        serialized = json.dumps(index)
        for record in sample_records:
            assert record.first_name not in serialized
            assert record.last_name not in serialized
        assert "jdoe@school.edu" not in serialized


class TestDedupeRecords:
    """Test collapsing repeated sourced ids."""

    def test_order_preserved(self, record_factory):
        records = [record_factory("3"), record_factory("1"), record_factory("3", "Other"), record_factory("2")]

        unique = dedupe_records(records)

        assert [r.sourced_id for r in unique] == ["3", "1", "2"]
        assert unique[0].first_name == "Jane"

    def test_no_duplicates_unchanged(self, sample_records):
        assert dedupe_records(sample_records) == sample_records
