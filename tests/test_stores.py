"""
Tests for country, job, run-log and source stores
"""
from datetime import datetime, timedelta, timezone

import pytest

from core import (
    AiRequest,
    AiRequestStatus,
    CountryRecord,
    CountryRunLog,
    JobStatus,
    RunKind,
    RunOutcome,
    Source,
    SourceStatus,
    SourceType,
    UpdateJob,
)
from storage import (
    InMemoryAiRequestStore,
    InMemoryCountryStore,
    InMemoryJobStore,
    InMemoryRunLogStore,
    InMemorySourceStore,
    JsonFileCountryStore,
    JsonFileJobStore,
    JsonFileSourceStore,
    JsonLinesRunLogStore,
)
from utils.exceptions import JobAlreadyRunningError, JobStateError, RecordNotFoundError, StorageError


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _log(job_id: str, iso3: str, outcome: RunOutcome, minutes: int = 0) -> CountryRunLog:
    return CountryRunLog(
        job_id=job_id,
        iso3=iso3,
        country=f"Country {iso3}",
        outcome=outcome,
        timestamp=T0 + timedelta(minutes=minutes),
    )


class _FlakyPersist:
    """Mixin whose next ``_persist`` call raises once ``fail_next`` is set."""

    fail_next = False

    def _persist(self):
        if self.fail_next:
            self.fail_next = False
            raise StorageError("disk full")


class _FlakyCountryStore(_FlakyPersist, InMemoryCountryStore):
    pass


class _FlakyJobStore(_FlakyPersist, InMemoryJobStore):
    pass


class _FlakySourceStore(_FlakyPersist, InMemorySourceStore):
    pass


class TestCountryStore:
    """Country record lookup and upsert"""

    def test_lookup_is_case_insensitive(self):
        store = InMemoryCountryStore([CountryRecord(iso3="deu", country="Germany")])

        assert store.find_by_key(" Deu ").country == "Germany"
        assert store.find_by_key("XXX") is None

    def test_find_all_keeps_order_and_filters(self):
        store = InMemoryCountryStore(
            [
                CountryRecord(iso3="KEN", country="Kenya", requires_permit=True),
                CountryRecord(iso3="DEU", country="Germany"),
                CountryRecord(iso3="JOR", country="Jordan", requires_permit=True),
            ]
        )

        assert [r.iso3 for r in store.find_all()] == ["KEN", "DEU", "JOR"]
        assert [r.iso3 for r in store.find_all(lambda r: r.requires_permit)] == ["KEN", "JOR"]

    def test_upsert_updates_only_given_fields(self):
        store = InMemoryCountryStore([CountryRecord(iso3="FRA", country="France", region="Europe", version=4)])

        updated = store.upsert("fra", {"version": 5, "last_updated": T0})

        assert updated.version == 5
        assert updated.region == "Europe"
        assert updated.last_updated == T0

    def test_upsert_creates_missing_record(self):
        store = InMemoryCountryStore()

        created = store.upsert("sgp", {"country": "Singapore", "version": 1})

        assert created.iso3 == "SGP"
        assert store.count() == 1

    def test_iso3_is_immutable(self):
        store = InMemoryCountryStore([CountryRecord(iso3="FRA", country="France")])

        with pytest.raises(StorageError):
            store.upsert("FRA", {"iso3": "DEU"})
        assert store.upsert("FRA", {"iso3": "fra", "region": "Europe"}).iso3 == "FRA"

    def test_returned_records_are_copies(self):
        store = InMemoryCountryStore([CountryRecord(iso3="FRA", country="France")])

        record = store.find_by_key("FRA")
        record.summary.status.append("-> local change")

        assert store.find_by_key("FRA").summary.status == []

    def test_insert_rejects_duplicates(self):
        store = InMemoryCountryStore([CountryRecord(iso3="FRA", country="France")])

        with pytest.raises(StorageError):
            store.insert(CountryRecord(iso3="FRA", country="France"))

    def test_json_file_round_trip(self, tmp_path):
        path = tmp_path / "countries.json"
        store = JsonFileCountryStore(path)
        store.upsert("ARE", {"country": "United Arab Emirates", "last_updated": T0})

        reloaded = JsonFileCountryStore(path)

        record = reloaded.find_by_key("ARE")
        assert record.country == "United Arab Emirates"
        assert record.last_updated == T0

    def test_corrupt_snapshot_raises(self, tmp_path):
        path = tmp_path / "countries.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError):
            JsonFileCountryStore(path)

    def test_failed_write_leaves_record_unchanged(self):
        store = _FlakyCountryStore([CountryRecord(iso3="KEN", country="Kenya", version=3)])
        store.fail_next = True

        with pytest.raises(StorageError):
            store.upsert("KEN", {"version": 4})

        assert store.find_by_key("KEN").version == 3
        assert store.upsert("KEN", {"version": 4}).version == 4

    def test_failed_write_does_not_create_record(self):
        store = _FlakyCountryStore()
        store.fail_next = True

        with pytest.raises(StorageError):
            store.upsert("SGP", {"country": "Singapore"})

        assert store.find_by_key("SGP") is None
        assert store.count() == 0


class TestJobStore:
    """Single running job and terminal transitions"""

    def test_claim_allows_one_running_job(self):
        store = InMemoryJobStore()
        first = store.claim(UpdateJob(kind=RunKind.MANUAL))

        with pytest.raises(JobAlreadyRunningError) as excinfo:
            store.claim(UpdateJob(kind=RunKind.SCHEDULED))

        assert excinfo.value.running_job_id == first.job_id
        assert store.find_running().job_id == first.job_id

    def test_claim_requires_running_status(self):
        with pytest.raises(JobStateError):
            InMemoryJobStore().claim(UpdateJob(kind=RunKind.MANUAL, status=JobStatus.COMPLETED))

    def test_complete_applies_counters_and_frees_slot(self):
        store = InMemoryJobStore()
        job = store.claim(UpdateJob(kind=RunKind.MANUAL))

        done = store.complete(job.job_id, {"drafts_created": 3, "records_considered": 7, "unknown": 9})

        assert done.status == JobStatus.COMPLETED
        assert done.drafts_created == 3
        assert done.records_considered == 7
        assert done.completed_at is not None
        assert store.find_running() is None
        store.claim(UpdateJob(kind=RunKind.MANUAL))

    def test_terminal_jobs_cannot_change(self):
        store = InMemoryJobStore()
        job = store.claim(UpdateJob(kind=RunKind.MANUAL))
        store.fail(job.job_id, "boom")

        with pytest.raises(JobStateError):
            store.complete(job.job_id)
        with pytest.raises(JobStateError):
            store.save_progress(job.job_id, {"drafts_created": 1})

    def test_reset_stale_marks_failed_with_reason(self):
        store = InMemoryJobStore()
        job = store.claim(UpdateJob(kind=RunKind.SCHEDULED))

        reset = store.reset_stale(job.job_id, "process crashed")

        assert reset.status == JobStatus.FAILED
        assert reset.error == "process crashed"

    def test_unknown_job_raises(self):
        with pytest.raises(RecordNotFoundError):
            InMemoryJobStore().complete("job_missing")

    def test_list_jobs_newest_first_with_total(self):
        jobs = [
            UpdateJob(kind=RunKind.MANUAL, started_at=T0 + timedelta(hours=i), status=JobStatus.COMPLETED)
            for i in range(5)
        ]
        store = InMemoryJobStore(jobs)

        page, total = store.list_jobs(limit=2, skip=1)

        assert total == 5
        assert [item.started_at for item in page] == [T0 + timedelta(hours=3), T0 + timedelta(hours=2)]

    def test_running_job_survives_reload(self, tmp_path):
        path = tmp_path / "update_jobs.json"
        job = JsonFileJobStore(path).claim(UpdateJob(kind=RunKind.MANUAL, triggered_by="ops"))

        reloaded = JsonFileJobStore(path)

        running = reloaded.find_running()
        assert running.job_id == job.job_id
        assert running.triggered_by == "ops"
        with pytest.raises(JobAlreadyRunningError):
            reloaded.claim(UpdateJob(kind=RunKind.MANUAL))

    def test_failed_claim_write_leaves_no_running_job(self):
        store = _FlakyJobStore()
        store.fail_next = True

        with pytest.raises(StorageError):
            store.claim(UpdateJob(kind=RunKind.MANUAL))

        assert store.find_running() is None
        assert store.list_jobs()[1] == 0
        store.claim(UpdateJob(kind=RunKind.MANUAL))

    def test_failed_complete_write_keeps_job_running(self):
        store = _FlakyJobStore()
        job = store.claim(UpdateJob(kind=RunKind.MANUAL))
        store.fail_next = True

        with pytest.raises(StorageError):
            store.complete(job.job_id, {"drafts_created": 2})

        current = store.get(job.job_id)
        assert current.status == JobStatus.RUNNING
        assert current.drafts_created == 0
        assert current.completed_at is None

        failed = store.fail(job.job_id, "snapshot write failed")
        assert failed.status == JobStatus.FAILED
        assert failed.error == "snapshot write failed"

    def test_failed_progress_write_keeps_previous_counters(self):
        store = _FlakyJobStore()
        job = store.claim(UpdateJob(kind=RunKind.MANUAL))
        store.save_progress(job.job_id, {"drafts_created": 1})
        store.fail_next = True

        with pytest.raises(StorageError):
            store.save_progress(job.job_id, {"drafts_created": 5})

        assert store.get(job.job_id).drafts_created == 1


class TestRunLogStore:
    """Append-only run log and derived counters"""

    def test_summarize_counts_latest_outcome_per_country(self):
        store = InMemoryRunLogStore()
        for entry in [
            _log("job_1", "AAA", RunOutcome.SUCCESS),
            _log("job_1", "BBB", RunOutcome.FAILED),
            _log("job_1", "CCC", RunOutcome.FAILED),
            _log("job_1", "DDD", RunOutcome.SKIPPED),
            _log("job_1", "BBB", RunOutcome.SUCCESS, minutes=30),
            _log("job_2", "AAA", RunOutcome.FAILED),
        ]:
            store.append(entry)

        summary = store.summarize("job_1")

        assert summary.attempts == 4
        assert summary.drafts_created == 2
        assert summary.records_changed == 2
        assert summary.records_failed == 1
        assert summary.records_skipped == 1
        assert summary.as_counters() == {
            "drafts_created": 2,
            "records_changed": 2,
            "records_failed": 1,
            "records_skipped": 1,
        }

    def test_list_for_country_newest_first(self):
        store = InMemoryRunLogStore(
            [
                _log("job_1", "KEN", RunOutcome.FAILED, minutes=0),
                _log("job_2", "KEN", RunOutcome.SUCCESS, minutes=60),
                _log("job_2", "JOR", RunOutcome.SUCCESS, minutes=61),
            ]
        )

        rows = store.list_for_country("ken")

        assert [row.job_id for row in rows] == ["job_2", "job_1"]
        assert len(store.list_for_country("KEN", limit=1)) == 1

    def test_jsonl_reload_skips_torn_line(self, tmp_path, caplog):
        path = tmp_path / "country_run_logs.jsonl"
        store = JsonLinesRunLogStore(path)
        store.append(_log("job_1", "AAA", RunOutcome.SUCCESS))
        store.append(_log("job_1", "BBB", RunOutcome.FAILED))
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"job_id": "job_1", "iso3"')

        reloaded = JsonLinesRunLogStore(path)

        assert [row.iso3 for row in reloaded.list_for_job("job_1")] == ["AAA", "BBB"]
        assert "Skipping unreadable row 3" in caplog.text

    def test_list_for_job_uses_append_order_per_job(self):
        store = InMemoryRunLogStore([_log("job_1", "AAA", RunOutcome.SUCCESS)])
        store.append(_log("job_2", "BBB", RunOutcome.FAILED))
        store.append(_log("job_1", "CCC", RunOutcome.FAILED))

        assert [row.iso3 for row in store.list_for_job("job_1")] == ["AAA", "CCC"]
        assert [row.iso3 for row in store.list_for_job("job_2")] == ["BBB"]
        assert store.list_for_job("job_3") == []

        store.list_for_job("job_1").clear()
        assert len(store.list_for_job("job_1")) == 2


class TestSourceStores:
    """Regulatory sources and model request audit rows"""

    def _source(self, title: str, countries, **fields) -> Source:
        return Source(
            title=title,
            source_type=SourceType.AIP_GEN,
            url=f"https://aip.example/{title.lower().replace(' ', '-')}",
            countries=countries,
            **fields,
        )

    def test_list_filters_by_country_status_and_text(self):
        store = InMemorySourceStore(
            [
                self._source("Kenya AIP GEN 1.2", ["ken"], status=SourceStatus.ACTIVE, extracted_text="text"),
                self._source("Jordan AIP GEN 1.2", ["JOR"], status=SourceStatus.ACTIVE),
                self._source("ICAO Doc 9284", ["KEN", "JOR"], status=SourceStatus.ERROR),
            ]
        )

        assert [s.title for s in store.list(country="KEN")] == ["ICAO Doc 9284", "Kenya AIP GEN 1.2"]
        assert [s.title for s in store.list(status=SourceStatus.ACTIVE, with_text=True)] == ["Kenya AIP GEN 1.2"]

    def test_update_keeps_id_and_rejects_unknown(self, tmp_path):
        path = tmp_path / "sources.json"
        store = JsonFileSourceStore(path)
        source = store.add(self._source("Kenya AIP GEN 1.2", ["KEN"]))

        store.update(source.source_id, {"source_id": "other", "hash": "abc", "status": SourceStatus.ACTIVE})

        reloaded = JsonFileSourceStore(path).get(source.source_id)
        assert reloaded.hash == "abc"
        assert reloaded.status == SourceStatus.ACTIVE
        with pytest.raises(RecordNotFoundError):
            store.update("src_missing", {"hash": "x"})

    def test_failed_write_leaves_source_unchanged(self):
        store = _FlakySourceStore([self._source("Kenya AIP GEN 1.2", ["KEN"], source_id="src_ken")])
        store.fail_next = True

        with pytest.raises(StorageError):
            store.update("src_ken", {"hash": "abc"})
        assert store.get("src_ken").hash == ""

        store.fail_next = True
        with pytest.raises(StorageError):
            store.add(self._source("Jordan AIP GEN 1.2", ["JOR"], source_id="src_jor"))
        assert store.get("src_jor") is None

    def test_ai_request_lifecycle(self):
        store = InMemoryAiRequestStore()
        request = store.create(AiRequest(iso3="KEN", prompt="p", model="gemini-2.5-flash"))

        store.update(request.request_id, {"status": AiRequestStatus.DRAFT, "response": "{}"})

        rows = store.list_for_country("ken")
        assert [row.status for row in rows] == [AiRequestStatus.DRAFT]
        assert rows[0].response == "{}"
        with pytest.raises(RecordNotFoundError):
            store.update("air_missing", {"status": AiRequestStatus.REJECTED})
