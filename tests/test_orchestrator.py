"""Print job orchestrator: lifecycle, isolation, timeouts and cleanup."""

import asyncio

from billprint.core.events import EventType
from billprint.core.state import JobState
from billprint.pipeline.job import PrintJob, document_id_from_url, receipt_kind
from billprint.pipeline.orchestrator import build_print_url, is_receipt_url

from conftest import status_messages, wait_until

BILL_URL = "https://app.example.com/bill/1234"
KOT_URL = "https://app.example.com/kot/987"


def test_receipt_urls_are_intercepted():
    assert is_receipt_url(BILL_URL)
    assert is_receipt_url(KOT_URL)
    assert is_receipt_url("https://app.example.com/hotel/bill/55?x=1")
    assert not is_receipt_url("https://app.example.com/billing/1")
    assert not is_receipt_url("https://app.example.com/menu?next=/bill/1")
    assert not is_receipt_url("https://app.example.com/")


def test_receipt_kind_and_document_id():
    assert receipt_kind(BILL_URL) == "bill"
    assert receipt_kind(KOT_URL) == "kot"
    assert receipt_kind("https://app.example.com/menu") is None
    assert document_id_from_url(BILL_URL) == "1234"
    assert document_id_from_url("https://app.example.com/kot/987/") == "987"


def test_build_print_url():
    assert build_print_url(BILL_URL) == BILL_URL + "?print=false"
    assert build_print_url(BILL_URL + "?a=b") == BILL_URL + "?a=b&print=false"
    assert build_print_url(BILL_URL, width_hint=576) == BILL_URL + "?print=false&width=576"


def test_non_receipt_navigation_is_allowed(make_pipeline):
    p = make_pipeline()

    async def scenario():
        return p.orchestrator.handle_navigation("https://app.example.com/menu")

    assert asyncio.run(scenario()) is False
    assert p.sandboxes == []


def test_successful_job(make_pipeline):
    p = make_pipeline()

    async def scenario():
        assert p.orchestrator.handle_navigation(BILL_URL) is True
        job = p.orchestrator.active_jobs[0]
        await p.orchestrator.wait_idle()
        return job

    job = asyncio.run(scenario())
    sandbox = p.sandboxes[0]

    assert job.state is JobState.COMPLETED
    assert sandbox.loaded_urls == [BILL_URL + "?print=false"]
    assert len(sandbox.print_calls) == 1
    assert sandbox.teardown_count == 1
    assert p.manager.open_count == 0
    assert p.orchestrator.active_jobs == []
    assert status_messages(p.bus) == [{"success": True, "message": "Print job sent!"}]
    assert p.error_log.read() == ""


def test_native_print_options_use_micrometres(make_pipeline):
    p = make_pipeline()

    async def scenario():
        p.orchestrator.start_job(KOT_URL)
        await p.orchestrator.wait_idle()

    asyncio.run(scenario())
    options = p.sandboxes[0].print_calls[0]

    assert options.page_width == 88000
    assert options.page_height == 279000
    assert options.margins == (0, 0, 0, 0)
    assert options.print_background is False
    assert options.silent is True
    assert options.scale_factor == 1.0
    assert options.device_name is None


def test_cleanup_twice_closes_sandbox_once(make_pipeline):
    p = make_pipeline()

    async def scenario():
        job = p.orchestrator.start_job(BILL_URL)
        await p.orchestrator.wait_idle()
        await job.cleanup()
        await job.cleanup()
        return job

    job = asyncio.run(scenario())
    assert job.is_finished
    assert p.sandboxes[0].teardown_count == 1


def test_cleanup_of_job_that_never_ran(make_pipeline):
    p = make_pipeline()

    async def scenario():
        sandbox = p.manager.create()
        job = PrintJob(
            url=BILL_URL,
            print_url=build_print_url(BILL_URL),
            sandbox=sandbox,
            manager=p.manager,
            delivery=None,
            settings=p.store.current,
            event_bus=p.bus,
            error_log=p.error_log,
        )
        await job.cleanup()
        await job.cleanup()
        assert await p.manager.destroy(sandbox) is False

    asyncio.run(scenario())
    assert p.sandboxes[0].teardown_count == 1


def test_ready_signal_from_other_sandbox_is_ignored(make_pipeline):
    p = make_pipeline(ready_on_load=False)

    async def scenario():
        job_a = p.orchestrator.start_job(BILL_URL)
        job_b = p.orchestrator.start_job(KOT_URL)
        await wait_until(lambda: job_a.state is JobState.AWAITING_READY
                         and job_b.state is JobState.AWAITING_READY)

        sandbox_a, sandbox_b = p.sandboxes
        sandbox_b.fire_ready()
        await wait_until(lambda: job_b.is_finished)

        assert job_b.state is JobState.COMPLETED
        assert job_a.state is JobState.AWAITING_READY
        assert sandbox_a.print_calls == []
        assert sandbox_a.teardown_count == 0

        sandbox_a.fire_ready()
        await p.orchestrator.wait_idle()
        return job_a, job_b

    job_a, job_b = asyncio.run(scenario())
    assert job_a.state is JobState.COMPLETED
    assert job_b.state is JobState.COMPLETED
    assert [len(s.print_calls) for s in p.sandboxes] == [1, 1]
    assert [s.teardown_count for s in p.sandboxes] == [1, 1]


def test_timeout_while_waiting_for_ready(make_pipeline):
    p = make_pipeline(ready_on_load=False, job_timeout=0.05)

    async def scenario():
        job = p.orchestrator.start_job(BILL_URL)
        await p.orchestrator.wait_idle()
        # A late signal after the timeout changes nothing
        p.sandboxes[0].fire_ready()
        await asyncio.sleep(0.01)
        return job

    job = asyncio.run(scenario())
    sandbox = p.sandboxes[0]

    assert job.state is JobState.TIMED_OUT
    assert sandbox.teardown_count == 1
    assert sandbox.print_calls == []
    assert status_messages(p.bus) == []
    assert len(p.bus.get_history(EventType.PRINT_TIMEOUT)) == 1
    assert "timed out after 0.05 seconds" in p.error_log.read()
    assert p.orchestrator.active_jobs == []


def test_timeout_while_printing(make_pipeline):
    p = make_pipeline(print_delay=5.0, job_timeout=0.05)

    async def scenario():
        job = p.orchestrator.start_job(BILL_URL)
        await p.orchestrator.wait_idle()
        return job

    job = asyncio.run(scenario())
    assert job.state is JobState.TIMED_OUT
    assert p.sandboxes[0].teardown_count == 1
    assert status_messages(p.bus) == []


def test_load_failure(make_pipeline):
    p = make_pipeline(fail_load="HTTP 404 Not Found")

    async def scenario():
        job = p.orchestrator.start_job(BILL_URL)
        await p.orchestrator.wait_idle()
        return job

    job = asyncio.run(scenario())
    assert job.state is JobState.FAILED
    assert job.failure_reason == "HTTP 404 Not Found"
    assert p.sandboxes[0].teardown_count == 1
    assert status_messages(p.bus) == [
        {"success": False, "message": "Print failed: HTTP 404 Not Found"}
    ]
    assert "ERROR: Print failed for https://app.example.com/bill/1234: HTTP 404 Not Found" in p.error_log.read()


def test_late_load_failure_while_awaiting_ready(make_pipeline):
    p = make_pipeline(ready_on_load=False)

    async def scenario():
        job = p.orchestrator.start_job(KOT_URL)
        await wait_until(lambda: job.state is JobState.AWAITING_READY)
        p.sandboxes[0].fire_load_failed("connection reset")
        await p.orchestrator.wait_idle()
        return job

    job = asyncio.run(scenario())
    assert job.state is JobState.FAILED
    assert status_messages(p.bus) == [
        {"success": False, "message": "Print failed: connection reset"}
    ]
    assert p.sandboxes[0].teardown_count == 1


def test_print_failure_is_reported_and_logged(make_pipeline):
    p = make_pipeline(print_result=(False, "Printer offline"))

    async def scenario():
        job = p.orchestrator.start_job(BILL_URL)
        await p.orchestrator.wait_idle()
        return job

    job = asyncio.run(scenario())
    assert job.state is JobState.FAILED
    assert status_messages(p.bus) == [{"success": False, "message": "Print failed: Printer offline"}]
    assert "Printer offline" in p.error_log.read()


def test_user_cancellation_is_not_an_error(make_pipeline):
    p = make_pipeline(print_result=(False, "cancelled"))

    async def scenario():
        job = p.orchestrator.start_job(BILL_URL)
        await p.orchestrator.wait_idle()
        return job

    job = asyncio.run(scenario())
    assert job.state is JobState.FAILED
    assert job.failure_reason == "cancelled"
    assert status_messages(p.bus) == [{"success": False, "message": "Print cancelled"}]
    assert p.error_log.read() == ""
    assert p.sandboxes[0].teardown_count == 1


def test_jobs_keep_settings_snapshot(make_pipeline):
    p = make_pipeline(ready_on_load=False)

    async def scenario():
        first = p.orchestrator.start_job(BILL_URL)
        await wait_until(lambda: first.state is JobState.AWAITING_READY)

        p.store.save({"width": 58, "height": 200, "scaleFactor": 1, "silentPrinting": True})
        second = p.orchestrator.start_job(KOT_URL)
        await wait_until(lambda: second.state is JobState.AWAITING_READY)

        for sandbox in p.sandboxes:
            sandbox.fire_ready()
        await p.orchestrator.wait_idle()

    asyncio.run(scenario())
    first_options = p.sandboxes[0].print_calls[0]
    second_options = p.sandboxes[1].print_calls[0]
    assert (first_options.page_width, first_options.page_height) == (88000, 279000)
    assert (second_options.page_width, second_options.page_height) == (58000, 200000)


def test_width_hint_is_appended(make_pipeline):
    p = make_pipeline(width_hint=576)

    async def scenario():
        p.orchestrator.start_job(BILL_URL)
        await p.orchestrator.wait_idle()

    asyncio.run(scenario())
    assert p.sandboxes[0].loaded_urls == [BILL_URL + "?print=false&width=576"]


def test_shutdown_closes_running_jobs(make_pipeline):
    p = make_pipeline(ready_on_load=False)

    async def scenario():
        jobs = [p.orchestrator.start_job(BILL_URL), p.orchestrator.start_job(KOT_URL)]
        await wait_until(lambda: all(j.state is JobState.AWAITING_READY for j in jobs))
        await p.orchestrator.shutdown()
        return jobs

    jobs = asyncio.run(scenario())
    assert [j.state for j in jobs] == [JobState.FAILED, JobState.FAILED]
    assert [s.teardown_count for s in p.sandboxes] == [1, 1]
    assert p.manager.open_count == 0
    assert p.orchestrator.active_jobs == []
    assert status_messages(p.bus) == []


def test_sandbox_creation_failure(make_pipeline):
    p = make_pipeline()

    def broken_factory(bus):
        raise RuntimeError("no display")

    p.manager._factory = broken_factory

    async def scenario():
        return p.orchestrator.handle_navigation(BILL_URL)

    assert asyncio.run(scenario()) is True
    assert status_messages(p.bus) == [{"success": False, "message": "Print failed: no display"}]
    assert "no display" in p.error_log.read()
