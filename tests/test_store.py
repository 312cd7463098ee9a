"""
Tests for the verification store.

- Run numbering and per-run files
- Index maintenance
- Legacy results.json dual-write
- Read path (last, history, stats) and clear
- Write failures
"""

import json
from unittest.mock import patch

import pytest

from featurewarden.errors import StoreWriteError
from featurewarden.models.verification import (
    AutomatedCheckResult,
    CriterionResult,
    VerificationIndex,
    VerificationResult,
)
from featurewarden.store import (
    INDEX_VERSION,
    STORE_VERSION,
    CompatibilityWriter,
    VerificationStore,
    format_run_number,
    get_verification_stats,
    save_verification_result,
)
from featurewarden.store.index import read_index_file, save_index, write_json_atomic


def make_result(feature_id="auth.login", verdict="pass", timestamp="2024-05-01T10:00:00", **kwargs):
    defaults = dict(
        feature_id=feature_id,
        timestamp=timestamp,
        commit_hash="abc1234def",
        changed_files=["src/auth/login.ts"],
        diff_summary="1 files changed",
        automated_checks=[
            AutomatedCheckResult(type="test", success=verdict == "pass", duration=1200, output="3 passed"),
        ],
        criteria_results=[
            CriterionResult(
                criterion="User can log in",
                index=0,
                satisfied=verdict == "pass",
                confidence=0.9,
                reasoning="Handler validates credentials",
                evidence=["src/auth/login.ts:12"],
            ),
        ],
        verdict=verdict,
        verified_by="claude",
        overall_reasoning="Looks complete",
    )
    defaults.update(kwargs)
    return VerificationResult(**defaults)


def store_dir(tmp_path):
    return tmp_path / "ai" / "verification"


def read_json(path):
    return json.loads(path.read_text())


class RecordingWriter(CompatibilityWriter):
    name = "recording"

    def __init__(self):
        self.writes = []
        self.clears = []

    def write(self, project_path, result, run_number):
        self.writes.append((result.feature_id, run_number))

    def clear(self, project_path, feature_id):
        self.clears.append(feature_id)


class FailingWriter(CompatibilityWriter):
    name = "failing"

    def write(self, project_path, result, run_number):
        raise OSError("disk full")

    def clear(self, project_path, feature_id):
        raise OSError("disk full")


class TestSave:
    """Tests for VerificationStore.save."""

    def test_first_run(self, tmp_path):
        """First save is run 001 with metadata, report, index and legacy entry."""
        store = VerificationStore(str(tmp_path))

        run_number = store.save(make_result())

        assert run_number == 1
        feature_dir = store_dir(tmp_path) / "auth.login"
        assert (feature_dir / "001.json").exists()
        assert (feature_dir / "001.md").exists()

        index = read_json(store_dir(tmp_path) / "index.json")
        assert index["version"] == INDEX_VERSION
        summary = index["features"]["auth.login"]
        assert summary["latestRun"] == 1
        assert summary["totalRuns"] == 1
        assert summary["latestVerdict"] == "pass"
        assert summary["passCount"] == 1
        assert summary["failCount"] == 0

        legacy = read_json(store_dir(tmp_path) / "results.json")
        assert legacy["version"] == STORE_VERSION
        assert legacy["results"]["auth.login"]["criteriaResults"][0]["reasoning"] == "Handler validates credentials"

    def test_run_numbers_increase(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        assert store.save(make_result(timestamp="2024-05-01T10:00:00")) == 1
        assert store.save(make_result(verdict="fail", timestamp="2024-05-02T10:00:00")) == 2
        assert store.save(make_result(timestamp="2024-05-03T10:00:00")) == 3

        summary = store.get_feature_summary("auth.login")
        assert summary.latest_run == 3
        assert summary.total_runs == 3
        assert summary.pass_count == 2
        assert summary.fail_count == 1

    def test_metadata_is_compact(self, tmp_path):
        """Free text goes to the report, not the metadata file."""
        VerificationStore(str(tmp_path)).save(make_result())

        meta = read_json(store_dir(tmp_path) / "auth.login" / "001.json")
        assert meta["runNumber"] == 1
        assert meta["featureId"] == "auth.login"
        assert "output" not in meta["automatedChecks"][0]
        assert "reasoning" not in meta["criteriaResults"][0]
        assert "evidence" not in meta["criteriaResults"][0]
        assert "overallReasoning" not in meta
        assert "suggestions" not in meta

        report = (store_dir(tmp_path) / "auth.login" / "001.md").read_text()
        assert "Handler validates credentials" in report
        assert "3 passed" in report

    def test_existing_run_file_is_skipped(self, tmp_path):
        """A run number already on disk is never reused."""
        feature_dir = store_dir(tmp_path) / "auth.login"
        feature_dir.mkdir(parents=True)
        (feature_dir / "003.json").write_text("{}")

        assert VerificationStore(str(tmp_path)).save(make_result()) == 4

    def test_index_floor(self, tmp_path):
        """Run numbers continue from the index even if files were removed."""
        store = VerificationStore(str(tmp_path))
        store.save(make_result())
        index = read_index_file(str(tmp_path))
        index.features["auth.login"].latest_run = 5
        save_index(str(tmp_path), index)

        assert store.save(make_result(timestamp="2024-05-02T10:00:00")) == 6

    def test_features_are_independent(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        assert store.save(make_result("auth.login")) == 1
        assert store.save(make_result("auth.logout")) == 1

    def test_compatibility_writers_run_after_save(self, tmp_path):
        writer = RecordingWriter()
        store = VerificationStore(str(tmp_path), writers=[writer])

        store.save(make_result())

        assert writer.writes == [("auth.login", 1)]
        assert not (store_dir(tmp_path) / "results.json").exists()

    def test_compatibility_writer_failure_propagates(self, tmp_path):
        store = VerificationStore(str(tmp_path), writers=[FailingWriter()])
        with pytest.raises(StoreWriteError, match="disk full"):
            store.save(make_result())

    def test_run_file_failure_cleans_up(self, tmp_path):
        """A failed write leaves neither run files nor an index entry."""
        store = VerificationStore(str(tmp_path))
        with patch("featurewarden.store.results.write_run_files", side_effect=OSError("read-only")):
            with pytest.raises(StoreWriteError) as exc_info:
                store.save(make_result())

        assert "read-only" in str(exc_info.value)
        assert not (store_dir(tmp_path) / "auth.login" / "001.json").exists()
        assert store.get_feature_summary("auth.login") is None

    def test_index_failure_cleans_up(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        with patch("featurewarden.store.results.save_index", side_effect=OSError("no space")):
            with pytest.raises(StoreWriteError):
                store.save(make_result())

        feature_dir = store_dir(tmp_path) / "auth.login"
        assert not (feature_dir / "001.json").exists()
        assert not (feature_dir / "001.md").exists()

    def test_unexpected_error_cleans_up(self, tmp_path):
        """A non-OS error still frees the reserved run number."""
        store = VerificationStore(str(tmp_path))
        with patch("featurewarden.store.results.write_run_files", side_effect=TypeError("bad text")):
            with pytest.raises(TypeError):
                store.save(make_result())

        assert not (store_dir(tmp_path) / "auth.login" / "001.json").exists()
        assert store.save(make_result()) == 1
        assert store.get_feature_summary("auth.login").total_runs == 1

    def test_module_helper(self, tmp_path):
        assert save_verification_result(str(tmp_path), make_result()) == 1


class TestRead:
    """Tests for get_last, get_history, has_verification and stats."""

    def test_get_last_prefers_full_legacy_record(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        store.save(make_result())

        last = store.get_last("auth.login")

        assert last.criteria_results[0].reasoning == "Handler validates credentials"
        assert last.automated_checks[0].output == "3 passed"

    def test_get_last_from_metadata_without_legacy(self, tmp_path):
        """Without results.json the result is rebuilt with empty free text."""
        store = VerificationStore(str(tmp_path), writers=[])
        store.save(make_result())

        last = store.get_last("auth.login")

        assert last.verdict == "pass"
        assert last.criteria_results[0].reasoning == ""
        assert last.criteria_results[0].evidence == []
        assert last.automated_checks[0].output is None
        assert last.overall_reasoning is None

    def test_get_last_ignores_outdated_legacy_record(self, tmp_path):
        """A legacy record from another run does not stand in for the latest."""
        VerificationStore(str(tmp_path)).save(make_result(timestamp="2024-05-01T10:00:00"))
        VerificationStore(str(tmp_path), writers=[]).save(
            make_result(verdict="fail", timestamp="2024-05-02T10:00:00")
        )

        last = VerificationStore(str(tmp_path)).get_last("auth.login")

        assert last.verdict == "fail"
        assert last.timestamp == "2024-05-02T10:00:00"

    def test_get_last_unknown_feature(self, tmp_path):
        assert VerificationStore(str(tmp_path)).get_last("nope") is None

    def test_history_is_oldest_first(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        store.save(make_result(timestamp="2024-05-01T10:00:00"))
        store.save(make_result(verdict="fail", timestamp="2024-05-02T10:00:00"))

        history = store.get_history("auth.login")

        assert [m.run_number for m in history] == [1, 2]
        assert [m.verdict for m in history] == ["pass", "fail"]

    def test_history_skips_unreadable_runs(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        store.save(make_result())
        (store_dir(tmp_path) / "auth.login" / "002.json").write_text("{broken")

        assert [m.run_number for m in store.get_history("auth.login")] == [1]

    def test_has_verification(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        assert store.has_verification("auth.login") is False
        store.save(make_result())
        assert store.has_verification("auth.login") is True

    def test_stats(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        store.save(make_result("a", verdict="pass"))
        store.save(make_result("b", verdict="fail"))
        store.save(make_result("c", verdict="needs_review"))
        store.save(make_result("c", verdict="pass", timestamp="2024-05-02T10:00:00"))

        assert store.stats() == {"total": 3, "passing": 2, "failing": 1, "needs_review": 0}
        assert get_verification_stats(str(tmp_path))["total"] == 3

    def test_stats_empty(self, tmp_path):
        assert VerificationStore(str(tmp_path)).stats() == {
            "total": 0, "passing": 0, "failing": 0, "needs_review": 0,
        }

    def test_corrupt_index_reads_as_empty(self, tmp_path):
        directory = store_dir(tmp_path)
        directory.mkdir(parents=True)
        (directory / "index.json").write_text("not json")

        index = VerificationStore(str(tmp_path)).load_index()

        assert isinstance(index, VerificationIndex)
        assert index.features == {}

    def test_save_after_corrupt_index(self, tmp_path):
        directory = store_dir(tmp_path)
        directory.mkdir(parents=True)
        (directory / "index.json").write_text("[]")

        assert VerificationStore(str(tmp_path)).save(make_result()) == 1
        assert read_json(directory / "index.json")["features"]["auth.login"]["latestRun"] == 1


class TestClear:
    """Tests for VerificationStore.clear."""

    def test_clear_forgets_feature_but_keeps_runs(self, tmp_path):
        store = VerificationStore(str(tmp_path))
        store.save(make_result("auth.login"))
        store.save(make_result("auth.logout"))

        store.clear("auth.login")

        assert store.has_verification("auth.login") is False
        assert store.has_verification("auth.logout") is True
        assert (store_dir(tmp_path) / "auth.login" / "001.json").exists()
        assert "auth.login" not in read_json(store_dir(tmp_path) / "results.json")["results"]

    def test_clear_runs_writers(self, tmp_path):
        writer = RecordingWriter()
        store = VerificationStore(str(tmp_path), writers=[writer])
        store.save(make_result())

        store.clear("auth.login")

        assert writer.clears == ["auth.login"]

    def test_clear_unknown_feature(self, tmp_path):
        VerificationStore(str(tmp_path)).clear("nope")


class TestHelpers:
    """Tests for store helpers."""

    def test_format_run_number(self):
        assert format_run_number(1) == "001"
        assert format_run_number(42) == "042"
        assert format_run_number(1000) == "1000"

    def test_write_json_atomic_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "index.json"
        write_json_atomic(target, {"a": 1})
        write_json_atomic(target, {"a": 2})

        assert read_json(target) == {"a": 2}
        assert [p.name for p in tmp_path.iterdir()] == ["index.json"]
