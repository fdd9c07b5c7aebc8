"""
Tests for the record lifecycle facade (create, list, stats, owner edits).
"""

import pytest

from conftest import CONTEXT
from supplyprov.core.lifecycle import RecordLifecycleAPI
from supplyprov.protocol.enums import LifecycleTag, RecordStatus
from supplyprov.protocol.errors import (
    ConflictError,
    ContentionError,
    EncryptionError,
    NotOwnerError,
    RecordNotFoundError,
    ValidationError,
    VersionConflict,
)
from supplyprov.protocol.models import RecordFilter
from supplyprov.store.memory import InMemoryRecordStore


class BrokenProvider:
    def encrypt(self, value, context):
        raise RuntimeError("coprocessor offline")

    def request_clear_value(self, handles, context):
        raise RuntimeError("coprocessor offline")

    def verify_proof(self, proof, clear_values, context):
        return False

    def is_available(self):
        raise RuntimeError("coprocessor offline")


def _create(api, name="Pallet", value=42, **attrs):
    return api.create("acme", {"name": name, **attrs}, value)


# ===========================================================================
# Create
# ===========================================================================


class TestCreate:
    def test_create_stores_encrypted_record(self, api, provider):
        record_id = api.create(
            "acme",
            {"name": "Pallet 7", "description": "Coffee beans", "lifecycle": "in_transit"},
            42,
        )

        record = api.get(record_id)
        assert record_id.startswith("item-")
        assert record.status is RecordStatus.CREATED
        assert record.version == 0
        assert record.clear_value is None
        assert record.public_attributes.lifecycle is LifecycleTag.IN_TRANSIT
        assert provider.verify_inclusion_proof(record.inclusion_proof, record.ciphertext_handle, CONTEXT)

    def test_generated_ids_are_unique(self, api):
        assert len({_create(api) for _ in range(20)}) == 20

    def test_caller_supplied_id(self, api):
        assert api.create("acme", {"name": "Crate"}, 1, record_id="crate-1") == "crate-1"

    def test_every_bad_field_is_reported(self, api, store):
        with pytest.raises(ValidationError) as exc_info:
            api.create("", {"lifecycle": "lost", "public_value": -3, "colour": "red"}, -1)

        assert set(exc_info.value.field_errors) == {
            "owner_id",
            "secret_value",
            "name",
            "lifecycle",
            "public_value",
            "colour",
        }
        assert store.records() == []

    @pytest.mark.parametrize("value", ["42", 4.2, True, None, 2**40])
    def test_secret_must_be_representable(self, api, value):
        with pytest.raises(ValidationError) as exc_info:
            api.create("acme", {"name": "Pallet"}, value)
        assert "secret_value" in exc_info.value.field_errors

    def test_duplicate_id_keeps_first_record(self, api):
        api.create("acme", {"name": "First"}, 1, record_id="item-x")
        first = api.get("item-x")

        with pytest.raises(ConflictError):
            api.create("globex", {"name": "Second"}, 2, record_id="item-x")

        assert api.get("item-x") == first

    def test_lifecycle_accepts_codes_and_labels(self, api):
        a = api.create("acme", {"name": "A", "lifecycle": 3}, 1)
        b = api.create("acme", {"name": "B", "lifecycle": "In Transit"}, 1)

        assert api.get(a).public_attributes.lifecycle is LifecycleTag.DELIVERED
        assert api.get(b).public_attributes.lifecycle is LifecycleTag.IN_TRANSIT

    def test_provider_failure_is_wrapped(self, store, coordinator):
        api = RecordLifecycleAPI(store, BrokenProvider(), coordinator)

        with pytest.raises(EncryptionError) as exc_info:
            api.create("acme", {"name": "Pallet"}, 1)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert store.records() == []


# ===========================================================================
# Reads
# ===========================================================================


class TestReads:
    @pytest.fixture
    def populated(self, api):
        ids = {
            "coffee": api.create("acme", {"name": "Coffee", "description": "Arabica beans"}, 10),
            "tea": api.create("acme", {"name": "Tea", "lifecycle": "in_transit"}, 20),
            "cocoa": api.create("globex", {"name": "Cocoa", "lifecycle": "delivered"}, 30),
        }
        api.verify(ids["tea"])
        return ids

    def test_get_missing(self, api):
        with pytest.raises(RecordNotFoundError):
            api.get("missing")

    def test_list_without_filter(self, api, populated):
        assert len(api.list()) == 3

    def test_search_is_case_insensitive(self, api, populated):
        assert [r.record_id for r in api.list(RecordFilter(search="BEANS"))] == [populated["coffee"]]
        assert {r.record_id for r in api.list(RecordFilter(search="co"))} == {
            populated["coffee"],
            populated["cocoa"],
        }

    def test_verified_filter(self, api, populated):
        assert [r.record_id for r in api.list(RecordFilter(verified=True))] == [populated["tea"]]
        assert len(api.list(RecordFilter(verified=False))) == 2

    def test_lifecycle_and_owner_filters(self, api, populated):
        delivered = api.list(RecordFilter(lifecycle=LifecycleTag.DELIVERED))
        assert [r.record_id for r in delivered] == [populated["cocoa"]]
        assert len(api.list(RecordFilter(owner_id="acme"))) == 2

    def test_stats(self, api, populated):
        stats = api.stats()
        assert stats.to_dict() == {
            "total": 3,
            "verified": 1,
            "manufactured": 1,
            "in_transit": 1,
            "delivered": 1,
        }

    def test_verification_through_facade(self, api, populated):
        assert api.request_verification(populated["cocoa"]) == 30
        assert api.verify(populated["cocoa"]).already_verified


# ===========================================================================
# Owner edits
# ===========================================================================


class TestUpdatePublicAttributes:
    def test_owner_can_edit(self, api):
        record_id = _create(api, location="Rotterdam")

        updated = api.update_public_attributes(record_id, "acme", {"lifecycle": "delivered"})

        assert updated.version == 1
        assert updated.public_attributes.lifecycle is LifecycleTag.DELIVERED
        assert updated.public_attributes.location == "Rotterdam"
        assert updated.status is RecordStatus.CREATED

    def test_non_owner_is_refused(self, api):
        record_id = _create(api)

        with pytest.raises(NotOwnerError):
            api.update_public_attributes(record_id, "globex", {"name": "Stolen"})
        assert api.get(record_id).version == 0

    def test_invalid_change_is_refused(self, api):
        record_id = _create(api)

        with pytest.raises(ValidationError) as exc_info:
            api.update_public_attributes(record_id, "acme", {"name": "", "status": "verified"})
        assert set(exc_info.value.field_errors) == {"name", "status"}

    def test_edit_after_verification_keeps_clear_value(self, api):
        record_id = _create(api, value=77)
        api.verify(record_id)

        updated = api.update_public_attributes(record_id, "acme", {"description": "Checked"})

        assert updated.status is RecordStatus.VERIFIED
        assert updated.clear_value == 77
        assert updated.version == 3

    def test_edit_of_unknown_record(self, api):
        with pytest.raises(RecordNotFoundError):
            api.update_public_attributes("missing", "acme", {"name": "x"})

    def test_edit_gives_up_under_contention(self, provider, coordinator):
        class ContendedStore(InMemoryRecordStore):
            def compare_and_set(self, record_id, expected_version, mutation):
                raise VersionConflict(record_id, expected_version, self.get(record_id))

        api = RecordLifecycleAPI(ContendedStore(), provider, coordinator, max_update_attempts=2)
        record_id = _create(api)

        with pytest.raises(ContentionError) as exc_info:
            api.update_public_attributes(record_id, "acme", {"name": "Renamed"})

        assert exc_info.value.retryable
        assert api.get(record_id).public_attributes.name == "Pallet"


# ===========================================================================
# Availability
# ===========================================================================


class TestAvailability:
    def test_available(self, api):
        assert api.is_available() is True
        assert api.context == CONTEXT

    def test_provider_failure_reports_unavailable(self, store, coordinator):
        api = RecordLifecycleAPI(store, BrokenProvider(), coordinator)
        assert api.is_available() is False
