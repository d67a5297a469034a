# ============================================================================
# MODEL + SCHEMA TESTS
# ============================================================================
# STATUS: Tests - Record models, enums and DDL generation
# PURPOSE: Verify model validation and the generated PostgreSQL schema shape
# CREATED: 14 OCT 2026
# ============================================================================
"""
Model + Schema Tests

Run with:
    pytest tests/test_models.py -v
"""

from datetime import timedelta

import pytest
from psycopg import sql
from pydantic import ValidationError

from core.contracts import Action, DesiredState, Phase, ResourceKind
from core.models import Lease, ResourceRecord, truncate_message
from core.models.resource import MESSAGE_MAX_LENGTH
from core.schema import PydanticToSQL

from conftest import T0


# ============================================================================
# ENUMS
# ============================================================================

class TestEnums:
    """Contract enums."""

    def test_begin_actions_skip_driver(self):
        assert not Action.BEGIN_START.requires_driver()
        assert not Action.BEGIN_TEARDOWN.requires_driver()
        assert Action.PROVISION.requires_driver()
        assert Action.TEARDOWN.requires_driver()

    def test_phase_helpers(self):
        assert Phase.CREATING.is_in_progress()
        assert not Phase.CREATED.is_in_progress()
        assert Phase.DELETED.is_terminal()
        assert Phase.FAILED.is_terminal()
        assert Phase.DELETE_FAILED.is_terminal()

    def test_values_are_wire_strings(self):
        assert ResourceKind("bucket_domain") == ResourceKind.BUCKET_DOMAIN
        assert DesiredState.DELETED.is_deleted()


# ============================================================================
# RESOURCE RECORD
# ============================================================================

class TestResourceRecord:
    """ResourceRecord validation and helpers."""

    def test_defaults(self):
        record = ResourceRecord(id="r1", kind=ResourceKind.DATABASE, owner_key="app-1")

        assert record.state == DesiredState.ACTIVE
        assert record.phase == Phase.CREATING
        assert record.locked_at is None
        assert record.retry_count == 0
        assert record.spec == {}

    def test_is_deleted_tracks_phase(self, make_record):
        assert not make_record(state=DesiredState.DELETED).is_deleted
        assert make_record(phase=Phase.DELETED).is_deleted

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValidationError):
            ResourceRecord(id="r1", kind=ResourceKind.BUCKET, owner_key="a", retry_count=-1)

    def test_status_projection(self, make_record):
        status = make_record(message="slow backend").status(converged=False)
        assert status.message == "slow backend"
        assert status.converged is False

    def test_truncate_message(self):
        assert truncate_message(None) is None
        assert truncate_message("short") == "short"
        assert len(truncate_message("x" * (MESSAGE_MAX_LENGTH + 10))) == MESSAGE_MAX_LENGTH


class TestLease:
    """Lease expiry arithmetic."""

    def test_expiry(self):
        lease = Lease(record_id="r1", token=T0, duration_seconds=30)

        assert lease.expires_at == T0 + timedelta(seconds=30)
        assert not lease.is_expired(T0 + timedelta(seconds=29))
        assert lease.is_expired(T0 + timedelta(seconds=30))
        assert lease.remaining_seconds(T0 + timedelta(seconds=10)) == 20
        assert lease.remaining_seconds(T0 + timedelta(seconds=99)) == 0

    def test_duration_must_be_positive(self):
        with pytest.raises(ValidationError):
            Lease(record_id="r1", token=T0, duration_seconds=0)


# ============================================================================
# DDL GENERATION
# ============================================================================

class TestPydanticToSQL:
    """Schema generated from ResourceRecord."""

    @pytest.mark.parametrize("field,expected", [
        ("id", "VARCHAR(64)"),
        ("parent_id", "VARCHAR(64)"),
        ("message", f"VARCHAR({MESSAGE_MAX_LENGTH})"),
        ("retry_count", "INTEGER"),
        ("locked_at", "TIMESTAMPTZ"),
        ("spec", "JSONB"),
        ("kind", "resource_kind"),
        ("state", "desired_state"),
        ("phase", "phase"),
    ])
    def test_column_types(self, field, expected):
        generator = PydanticToSQL()
        info = ResourceRecord.model_fields[field]
        assert generator.python_type_to_sql(info.annotation, info) == expected

    def test_enum_type_name(self):
        assert PydanticToSQL.enum_type_name(ResourceKind) == "resource_kind"
        assert PydanticToSQL.enum_type_name(DesiredState) == "desired_state"

    def test_generate_all(self):
        generator = PydanticToSQL(schema_name="ctrl")
        statements = generator.generate_all()

        # schema + 3 enum types + table + 5 indexes
        assert len(statements) == 10
        assert all(isinstance(s, sql.Composable) for s in statements)
        assert set(generator.enums) == {"resource_kind", "desired_state", "phase"}

    def test_metadata(self):
        meta = PydanticToSQL.get_model_metadata(ResourceRecord)
        assert meta["table"] == "resources"
        assert meta["primary_key"] == ["id"]
        assert len(meta["indexes"]) == 5
