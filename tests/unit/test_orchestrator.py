from __future__ import annotations

import asyncio

import pytest

from inkstrip.exceptions import BatchInProgressError
from inkstrip.orchestrator import BatchOrchestrator
from inkstrip.state_store import SessionStore
from inkstrip.tuning import TuningResolver
from inkstrip.typing.enums import JobStatus, PageStatus
from inkstrip.typing.models import DocumentJob, SourceDocument


class _MemoryStore:
    def __init__(self) -> None:
        self.values: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self.values.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)

    def clear(self) -> None:
        self.values.clear()

    def keys(self) -> list[str]:
        return sorted(self.values)


class _CountingSource:
    def __init__(self) -> None:
        self.calls = 0

    async def suggest(self, image_png_base64: str) -> str:
        _ = image_png_base64
        self.calls += 1
        return '{"dilateRadius": 0}'


@pytest.fixture
def codec(fake_codec, make_buffer):
    red_page = make_buffer(3, 3)
    pixels = red_page.pixels.copy()
    pixels[1, 1] = (255, 0, 0, 255)
    red_page = red_page.model_copy(update={"pixels": pixels})
    fake_codec.documents[b"three"] = [red_page, make_buffer(3, 3), make_buffer(3, 3)]
    fake_codec.documents[b"one"] = [make_buffer(2, 2)]
    return fake_codec


def _source(data: bytes, document_id: str = "doc-1", name: str = "scan.pdf") -> SourceDocument:
    return SourceDocument(id=document_id, name=name, data=data)


def test_process_document_cleans_every_page(codec) -> None:
    orchestrator = BatchOrchestrator(codec, TuningResolver(), working_scale=1.75)
    job = DocumentJob(document_id="doc-1")

    asyncio.run(orchestrator.process_document(job, _source(b"three")))

    assert job.status == JobStatus.DONE
    assert job.progress == (3, 3)
    assert job.name == "scan.pdf"
    assert [page.status for page in job.pages] == [PageStatus.DONE] * 3
    assert (job.pages[0].raster.pixels == 255).all()
    assert [call[1:] for call in codec.render_calls] == [(0, 1.75), (1, 1.75), (2, 1.75)]
    assert codec.closed == ["doc-1"]


def test_page_failure_stops_document_and_keeps_earlier_pages(codec) -> None:
    codec.failing_pages.add((b"three", 1))
    orchestrator = BatchOrchestrator(codec, TuningResolver())
    job = DocumentJob(document_id="doc-1")

    asyncio.run(orchestrator.process_document(job, _source(b"three")))

    assert job.status == JobStatus.FAILED
    assert job.error == "Failed to render page 2"
    assert job.pages[0].status == PageStatus.DONE
    assert job.pages[0].raster is not None
    assert job.pages[1].status == PageStatus.FAILED
    assert job.pages[1].error == "Failed to render page 2"
    assert job.pages[1].raster is None
    assert job.pages[2].status == PageStatus.PENDING
    assert job.completed == 1
    assert [call[1] for call in codec.render_calls] == [0, 1]


def test_unexpected_error_is_recorded_on_the_page(codec) -> None:
    def _explode(*args: object):
        _ = args
        raise RuntimeError("boom")

    codec.render_page = _explode
    job = DocumentJob(document_id="doc-1")

    asyncio.run(BatchOrchestrator(codec, TuningResolver()).process_document(job, _source(b"three")))

    assert job.status == JobStatus.FAILED
    assert job.pages[0].error == "boom"


def test_process_all_continues_after_failed_document(codec) -> None:
    orchestrator = BatchOrchestrator(codec, TuningResolver())
    sources = [_source(b"corrupt", "bad", "bad.pdf"), _source(b"three", "good", "good.pdf")]

    run = asyncio.run(orchestrator.process_all(sources))

    bad, good = run.jobs
    assert bad.status == JobStatus.FAILED
    assert "bad" in (bad.error or "")
    assert good.status == JobStatus.DONE
    assert good.progress == (3, 3)
    assert not run.running
    assert not run.succeeded
    assert orchestrator.active_run is None


def test_process_all_reuses_given_jobs(codec) -> None:
    orchestrator = BatchOrchestrator(codec, TuningResolver())
    job = DocumentJob(document_id="doc-1", name="kept.pdf")

    run = asyncio.run(orchestrator.process_all([_source(b"one")], {"doc-1": job}))

    assert run.jobs[0] is job
    assert run.job_for("doc-1") is job
    assert job.name == "kept.pdf"
    assert run.succeeded


def test_second_concurrent_batch_is_rejected(codec) -> None:
    orchestrator = BatchOrchestrator(codec, TuningResolver())

    async def _race() -> list[object]:
        return await asyncio.gather(
            orchestrator.process_all([_source(b"three")]),
            orchestrator.process_all([_source(b"one", "doc-2")]),
            return_exceptions=True,
        )

    first, second = asyncio.run(_race())

    assert isinstance(second, BatchInProgressError)
    assert first.succeeded


def test_cancel_request_stops_before_next_page(codec) -> None:
    job = DocumentJob(document_id="doc-1")
    orchestrator = BatchOrchestrator(codec, TuningResolver(), on_progress=lambda current: current.cancel())

    asyncio.run(orchestrator.process_document(job, _source(b"three")))

    assert job.status == JobStatus.CANCELLED
    assert job.completed == 1
    assert job.pages[1].status == PageStatus.PENDING


def test_reset_supersedes_running_batch_without_touching_jobs(codec) -> None:
    holder: dict[str, BatchOrchestrator] = {}
    orchestrator = BatchOrchestrator(codec, TuningResolver(), on_progress=lambda _job: holder["o"].reset())
    holder["o"] = orchestrator
    sources = [_source(b"three"), _source(b"one", "doc-2")]

    run = asyncio.run(orchestrator.process_all(sources))

    first, second = run.jobs
    assert first.status == JobStatus.PROCESSING
    assert first.completed == 1
    assert first.pages[1].status == PageStatus.PENDING
    assert second.status == JobStatus.PENDING
    assert second.pages == []
    assert not orchestrator.is_running


def test_resume_document_skips_done_pages(codec) -> None:
    codec.failing_pages.add((b"three", 2))
    orchestrator = BatchOrchestrator(codec, TuningResolver())
    job = DocumentJob(document_id="doc-1")
    asyncio.run(orchestrator.process_document(job, _source(b"three")))
    assert job.status == JobStatus.FAILED

    codec.failing_pages.clear()
    codec.render_calls.clear()
    asyncio.run(orchestrator.resume_document(job, _source(b"three")))

    assert job.status == JobStatus.DONE
    assert job.progress == (3, 3)
    assert [call[1] for call in codec.render_calls] == [2]


def test_resume_document_without_pages_starts_over(codec) -> None:
    job = DocumentJob(document_id="doc-1")

    asyncio.run(BatchOrchestrator(codec, TuningResolver()).resume_document(job, _source(b"one")))

    assert job.status == JobStatus.DONE
    assert job.progress == (1, 1)


def test_process_all_resume_keeps_finished_jobs(codec) -> None:
    orchestrator = BatchOrchestrator(codec, TuningResolver())
    finished = DocumentJob(document_id="doc-1", status=JobStatus.DONE)

    run = asyncio.run(orchestrator.process_all([_source(b"three")], {"doc-1": finished}, resume=True))

    assert run.jobs[0] is finished
    assert codec.render_calls == []


def test_tuning_source_receives_encoded_sample(codec) -> None:
    source = _CountingSource()
    job = DocumentJob(document_id="doc-1")

    asyncio.run(BatchOrchestrator(codec, TuningResolver(source)).process_document(job, _source(b"three")))

    assert source.calls == 3
    # dilation disabled by the suggestion: only the red pixel is rewritten
    assert (job.pages[0].raster.pixels == 255).all()


def test_snapshots_are_persisted_after_each_page(codec) -> None:
    store = _MemoryStore()
    session = SessionStore(store)
    progress: list[int] = []
    orchestrator = BatchOrchestrator(
        codec,
        TuningResolver(),
        session=session,
        on_progress=lambda current: progress.append(current.completed),
    )
    job = DocumentJob(document_id="doc-1", name="scan.pdf")

    asyncio.run(orchestrator.process_document(job, _source(b"three")))

    snapshot = session.load_job_state("doc-1")
    assert progress == [1, 2, 3]
    assert snapshot is not None
    assert snapshot.status == JobStatus.DONE
    assert snapshot.completed == 3
    assert all(page.image_png_base64 for page in snapshot.pages)


def test_open_failure_is_persisted(codec) -> None:
    session = SessionStore(_MemoryStore())
    job = DocumentJob(document_id="bad")

    asyncio.run(
        BatchOrchestrator(codec, TuningResolver(), session=session).process_document(
            job,
            _source(b"corrupt", "bad"),
        ),
    )

    snapshot = session.load_job_state("bad")
    assert snapshot is not None
    assert snapshot.status == JobStatus.FAILED


class _OversizedNumberSource:
    async def suggest(self, image_png_base64: str) -> str:
        _ = image_png_base64
        return '{"dilateRadius": 1' + "0" * 400 + "}"


def test_unusable_tuning_answer_keeps_document_processing(codec) -> None:
    orchestrator = BatchOrchestrator(codec, TuningResolver(_OversizedNumberSource()))
    job = DocumentJob(document_id="doc-1")

    asyncio.run(orchestrator.process_document(job, _source(b"three")))

    assert job.status == JobStatus.DONE
    assert job.error is None


def test_encoded_pages_are_released_when_document_finishes(codec, mocker) -> None:
    encode = mocker.spy(codec, "encode_png")
    orchestrator = BatchOrchestrator(codec, TuningResolver(), session=SessionStore(_MemoryStore()))
    job = DocumentJob(document_id="doc-1")

    asyncio.run(orchestrator.process_document(job, _source(b"three")))

    assert job.status == JobStatus.DONE
    assert encode.call_count == 3
    assert orchestrator._encoded_pages == {}
