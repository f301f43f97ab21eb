"""
Unit tests for the multi-phase migrator

Tests run full migrations against in-memory environments and verify:
- Pass ordering (flat, references, state, many-to-many)
- Diff, force and dry-run modes
- Continue-on-error semantics and error propagation rules
"""

import math
from unittest.mock import MagicMock

import pytest

from refsync.errors import ConfigurationError, PreparationError
from refsync.migrate import Migrator, Phase
from refsync.models import ManyToManyConfig, TableSyncConfig
from refsync.service import SetStateRequest, UpdateRequest, UpsertRequest
from refsync.values import Choice, Reference

from factories import build_source, build_target, country, tag, tag_schema

COUNTRIES = TableSyncConfig("new_country", manage_state=True)
COUNTRY_TAG = ManyToManyConfig("new_country_tag")


class TestMigratorPasses:
    """Test a full migration into an empty target"""

    def test_full_migration(self, source_service, target_service):
        """Test every record, lookup, state and pair ends up in the target"""
        # Act
        summary = Migrator(source_service, target_service).migrate(
            [COUNTRIES], [COUNTRY_TAG]
        )

        # Assert
        assert summary.has_errors is False
        table = summary.table_results[0]
        assert table.source_count == 3
        assert table.target_count == 0
        assert table.upserted == 3
        assert table.lookups_patched == 2
        assert table.state_changes == 1
        assert table.skipped == 0

        records = target_service.records("new_country")
        assert records["c2"].get("new_parentid") == Reference("new_country", "c1")
        assert records["c3"].get("statecode") == Choice(1)
        assert records["c3"].get("statuscode") == Choice(2)

        relationship = summary.many_to_many_results[0]
        assert relationship.associated == 2
        assert relationship.entity1_name == "new_country"
        assert target_service.associations("new_country_tag") == {("c1", "t1"), ("c2", "t2")}

    def test_passes_run_in_order(self, source_service, target_service):
        """Test all upserts precede all lookup patches, which precede state changes"""
        Migrator(source_service, target_service).migrate([COUNTRIES])

        kinds = [type(request) for batch in target_service.batches for request in batch]
        assert kinds == [UpsertRequest] * 3 + [UpdateRequest] * 2 + [SetStateRequest]

    def test_flat_pass_never_writes_references_or_state(self, source_service, target_service):
        Migrator(source_service, target_service).migrate([COUNTRIES])

        for request in target_service.batches[0]:
            assert "new_parentid" not in request.attributes
            assert "statecode" not in request.attributes
            assert "new_countryid" not in request.attributes

    def test_passes_span_all_tables(self, source_service, target_service):
        """Test pass 1 finishes for every table before pass 2 starts"""
        source_service.add_table(tag_schema(), [tag("t3", "Green")])

        Migrator(source_service, target_service).migrate([COUNTRIES, TableSyncConfig("new_tag")])

        batches = target_service.batches
        assert [type(batch[0]) for batch in batches] == [
            UpsertRequest, UpsertRequest, UpdateRequest, SetStateRequest,
        ]
        assert [batch[0].type for batch in batches] == [
            "new_country", "new_tag", "new_country", "new_country",
        ]


class TestMigratorModes:
    """Test diff, force and dry-run modes"""

    def test_identical_environments_issue_no_writes(self):
        source = build_source()
        target = build_target(countries=list(source.records("new_country").values()))

        summary = Migrator(source, target).migrate([COUNTRIES])

        table = summary.table_results[0]
        assert (table.upserted, table.lookups_patched, table.state_changes) == (0, 0, 0)
        assert table.skipped == 3
        assert target.write_calls == 0

    def test_only_changed_records_are_written(self):
        source = build_source()
        target = build_target(countries=[
            country("c1", "Europe"),
            country("c2", "France", "FR"),
            country("c3", "Gaul", "GA", parent="c2", state=1, status=2),
        ])

        summary = Migrator(source, target).migrate([COUNTRIES])

        table = summary.table_results[0]
        assert table.upserted == 0
        assert table.lookups_patched == 1
        assert table.skipped == 2
        assert target.records("new_country")["c2"].get("new_parentid").target_id == "c1"

    @pytest.mark.parametrize("batch_size", [1, 2, 3, 1000])
    def test_force_mode_batch_count(self, batch_size):
        """Test force mode issues ceil(N/B) pass 1 batches and skips nothing"""
        source = build_source()
        target = build_target(countries=list(source.records("new_country").values()))
        tables = [TableSyncConfig("new_country")]

        summary = Migrator(source, target, batch_size=batch_size).migrate(tables, force=True)

        flat_batches = [b for b in target.batches if isinstance(b[0], UpsertRequest)]
        assert len(flat_batches) == math.ceil(3 / batch_size)
        assert summary.table_results[0].upserted == 3
        assert summary.table_results[0].skipped == 0
        assert summary.is_force is True

    def test_dry_run_matches_force_counters_without_writes(self):
        """Test a dry run reports the counters a real run would produce"""
        dry_target = build_target()
        real_target = build_target()

        dry = Migrator(build_source(), dry_target).migrate(
            [COUNTRIES], [COUNTRY_TAG], dry_run=True, force=True
        )
        real = Migrator(build_source(), real_target).migrate(
            [COUNTRIES], [COUNTRY_TAG], force=True
        )

        assert dry_target.write_calls == 0
        assert dry.is_dry_run is True
        assert dry.to_dict()["totals"] == real.to_dict()["totals"]

    def test_dry_run_does_not_touch_associations(self, source_service, target_service):
        summary = Migrator(source_service, target_service).migrate(
            [COUNTRIES], [COUNTRY_TAG], dry_run=True
        )

        assert summary.total_associated == 2
        assert target_service.associations("new_country_tag") == set()


class TestMigratorErrors:
    """Test error handling during a migration"""

    def test_fault_is_recorded_and_run_continues(self, source_service, target_service):
        """Test one rejected record does not stop other records or later passes"""
        # Arrange
        target_service.fail_when(
            lambda r: "Code already used" if isinstance(r, UpsertRequest) and r.id == "c1" else None
        )

        # Act
        summary = Migrator(source_service, target_service).migrate([COUNTRIES], [COUNTRY_TAG])

        # Assert
        table = summary.table_results[0]
        assert table.upserted == 2
        assert summary.has_errors is True
        assert table.errors[0].record_id == "c1"
        assert table.errors[0].phase == Phase.UPSERT_FLAT

        # c2 references the missing c1, c3 references c2
        assert table.lookups_patched == 1
        assert table.errors[1].phase == Phase.PATCH_LOOKUPS
        assert table.state_changes == 1
        assert summary.many_to_many_results[0].associated == 2

    def test_failed_relationship_is_recorded(self, source_service, target_service):
        summary = Migrator(source_service, target_service).migrate(
            [COUNTRIES], [ManyToManyConfig("missing_rel")]
        )

        result = summary.many_to_many_results[0]
        assert result.associated == 0
        assert result.errors[0].record_id == ""
        assert result.errors[0].phase == Phase.MANY_TO_MANY
        assert summary.table_results[0].upserted == 3

    def test_preparation_error_aborts_before_writes(self, source_service, target_service):
        with pytest.raises(PreparationError):
            Migrator(source_service, target_service).migrate(
                [COUNTRIES, TableSyncConfig("new_missing")]
            )

        assert target_service.write_calls == 0

    def test_no_tables_is_a_configuration_error(self, source_service, target_service):
        with pytest.raises(ConfigurationError):
            Migrator(source_service, target_service).migrate([])

    def test_invalid_batch_size(self, source_service, target_service):
        with pytest.raises(ConfigurationError):
            Migrator(source_service, target_service, batch_size=0)

    def test_summary_environments(self):
        source = MagicMock(wraps=build_source())
        source.environment = "dev"
        target = MagicMock(wraps=build_target())
        target.environment = "test"

        summary = Migrator(source, target).migrate([COUNTRIES], dry_run=True)

        assert summary.source_environment == "dev"
        assert summary.target_environment == "test"
