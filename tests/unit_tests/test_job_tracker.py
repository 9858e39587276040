import json
import os

from rs_timeseries.execution import run_local_tasks
from rs_timeseries.exit_codes import ExitCode, exit_code_from_tracker
from rs_timeseries.tracking import (
    JobResult,
    JobTracker,
    PipelineRun,
    RunStore,
    StepResult,
    get_per_window_status,
    process_result,
)


def _window(start):
    return {"start_date": start, "end_date": "2020-12-31", "year": 2020, "month": int(start[5:7])}


def test_process_result_dict_and_exception(tmp_path):
    tracker = JobTracker(str(tmp_path))
    process_result(tracker, "j1", "COMPOSITE", "landsat", _window("2020-01-01"),
                   {"status": "success", "summary": {"image_count": 3}}, 0.5)
    process_result(tracker, "j2", "COMPOSITE", "landsat", _window("2020-02-01"),
                   KeyError("SR_B4"), 0.1)

    ok, err = tracker.results
    assert ok.status == "success" and ok.result_data == {"image_count": 3}
    assert err.status == "error" and err.error_type == "KeyError"
    assert tracker.failures() == [err]


def test_exit_codes(tmp_path):
    tracker = JobTracker(str(tmp_path))
    assert exit_code_from_tracker(tracker) == ExitCode.SUCCESS

    tracker.add_result(JobResult("a", "COMPOSITE", "landsat", _window("2020-01-01"), "success"))
    tracker.add_result(JobResult("b", "COMPOSITE", "landsat", _window("2020-02-01"), "failed"))
    assert exit_code_from_tracker(tracker) == ExitCode.PARTIAL_FAILURE

    tracker.add_result(JobResult("c", "EXPORT_TABLE", "landsat", {}, "failed"))
    assert exit_code_from_tracker(tracker) == ExitCode.EXPORT_FAILED

    all_failed = JobTracker(str(tmp_path))
    all_failed.add_result(JobResult("a", "COMPOSITE", "landsat", _window("2020-01-01"), "failed"))
    assert exit_code_from_tracker(all_failed) == ExitCode.TOTAL_FAILURE


def test_run_local_tasks_records_failures_in_order(tmp_path):
    tracker = JobTracker(str(tmp_path))

    def worker(start_date, **_):
        if start_date == "2020-02-01":
            raise ValueError("bad window")
        return {"status": "success", "payload": start_date}

    kwargs_list = [
        {**_window(s), "source": "landsat"} for s in ("2020-01-01", "2020-02-01", "2020-03-01")
    ]
    results = run_local_tasks(worker, "COMPOSITE", kwargs_list, tracker, max_workers=3)

    assert [r["status"] for r in results] == ["success", "failed", "success"]
    assert results[0]["payload"] == "2020-01-01"
    assert results[1]["payload"] is None
    failed = tracker.failures()[0]
    assert failed.job_id == "COMPOSITE_landsat_2020-02-01"
    assert failed.error_type == "ValueError"

    status = get_per_window_status(tracker, "COMPOSITE")
    assert status == {"2020-01-01": "success", "2020-02-01": "failed", "2020-03-01": "success"}


def test_save_reports(tmp_path):
    tracker = JobTracker(str(tmp_path))
    tracker.add_result(JobResult("a", "COMPOSITE", "landsat", _window("2020-01-01"), "success",
                                 duration_sec=1.0))
    tracker.add_result(JobResult("b", "EXPORT_RASTER", "landsat", _window("2020-01-01"), "failed",
                                 error_message="boom", error_type="ExportJobError"))
    tracker.save_reports()

    names = os.listdir(tmp_path)
    assert any(n.startswith("job_report_") and n.endswith(".json") for n in names)
    assert any(n.startswith("job_summary_") for n in names)
    failed_file = next(n for n in names if n.startswith("failed_jobs_"))
    with open(tmp_path / failed_file) as f:
        assert json.load(f)[0]["error_type"] == "ExportJobError"


def test_run_store_round_trip(tmp_path):
    store = RunStore(str(tmp_path / "runs"))
    run = PipelineRun("abc123", "2020-01-01T00:00:00", {"zonal": {}}, {"source": "landsat"}, "exports")
    ws = run.ensure_window("2020-01-01", "2020-02-01", 2020, 1)
    ws.steps["composite"] = StepResult(status="success")
    run.ensure_window("2020-02-01", "2020-03-01", 2020, 2)
    store.save(run)

    loaded = store.load("abc123")
    assert loaded.windows["2020-01-01"].steps["composite"].status == "success"
    assert loaded.windows_pending_step("composite") == ["2020-02-01"]
    assert store.list_runs() == ["abc123"]
