"""Unit tests for the ProcessingJobService orchestrator."""

import pytest

from app.application.services import DeadLetterService, ProcessingJobService, StageRegistry
from app.domain.entities import JobType, ProcessingJob
from app.domain.exceptions import (
    ConfigurationError,
    DeadLetterWriteError,
    EntityNotFoundError,
    InvalidTransitionError,
)
from app.domain.job_state_machine import JobStatus
from app.domain.retry_policy import RetryPolicy


def _pending(
    job_type: JobType = JobType.TEXT_EXTRACTION,
    document_id: str = "doc-1",
    job_id: str | None = None,
) -> ProcessingJob:
    return ProcessingJob(
        id=job_id or f"job-{job_type.value}", document_id=document_id, job_type=job_type
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_service(job_repo, dead_letter_repo, document_repo, sleeps):
    def factory(handlers, max_attempts: int = 3, sleep=None) -> ProcessingJobService:
        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        return ProcessingJobService(
            job_repository=job_repo,
            dead_letter_service=DeadLetterService(dead_letter_repo),
            stage_registry=StageRegistry(handlers),
            document_repository=document_repo,
            retry_policy=RetryPolicy(
                max_attempts=max_attempts, base_delay_ms=10, max_delay_ms=1000, jitter_ratio=0
            ),
            sleep=sleep or fake_sleep,
        )

    return factory


# ── Retry and dead-lettering ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_exhausted_job_is_dead_lettered_once(make_service, job_repo, dead_letter_repo, sleeps):
    attempts_seen = []

    async def always_fails(job, document):
        attempts_seen.append(job.attempt_count)
        raise RuntimeError("extractor crashed")

    service = make_service({JobType.TEXT_EXTRACTION: always_fails})
    job = await job_repo.save(_pending())

    final = await service.execute_with_retry(job)

    assert final.status == JobStatus.DEAD_LETTER
    assert final.id == job.id
    assert final.attempt_count == 3
    assert final.error_message == "extractor crashed"
    assert attempts_seen == [1, 2, 3]

    assert dead_letter_repo.save_calls == 1
    record = dead_letter_repo.records[0]
    assert record.job_id == job.id
    assert record.attempts == 3
    assert record.error_message == "extractor crashed"

    assert sleeps == [pytest.approx(0.02), pytest.approx(0.04)]
    assert job_repo.transitions == [
        (JobStatus.PENDING, JobStatus.RUNNING),
        (JobStatus.RUNNING, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.RETRYING),
        (JobStatus.RETRYING, JobStatus.RUNNING),
        (JobStatus.RUNNING, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.RETRYING),
        (JobStatus.RETRYING, JobStatus.RUNNING),
        (JobStatus.RUNNING, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.DEAD_LETTER),
    ]


@pytest.mark.asyncio
async def test_success_after_one_failure_keeps_job_id(make_service, job_repo, dead_letter_repo):
    calls = 0

    async def flaky(job, document):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConnectionError("storage timeout")
        return {"pages": 3}

    service = make_service({JobType.TEXT_EXTRACTION: flaky})
    job = await job_repo.save(_pending())

    final = await service.execute_with_retry(job)

    assert final.status == JobStatus.COMPLETED
    assert final.id == job.id
    assert final.attempt_count == 2
    assert final.progress == 100
    assert final.result == {"pages": 3}
    assert final.error_message is None
    assert dead_letter_repo.save_calls == 0


@pytest.mark.asyncio
async def test_retrying_is_stored_before_backoff(make_service, job_repo):
    seen_during_sleep = []
    calls = 0

    async def flaky(job, document):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("first attempt fails")
        return None

    job = await job_repo.save(_pending())

    async def observing_sleep(seconds: float) -> None:
        seen_during_sleep.append(job_repo.jobs[job.id].status)

    service = make_service({JobType.TEXT_EXTRACTION: flaky}, sleep=observing_sleep)
    await service.execute_with_retry(job)

    assert seen_during_sleep == [JobStatus.RETRYING]


@pytest.mark.asyncio
async def test_dead_letter_write_failure_escalates(make_service, job_repo, dead_letter_repo):
    async def always_fails(job, document):
        raise RuntimeError("bad input")

    dead_letter_repo.fail_with = OSError("dead-letter store offline")
    service = make_service({JobType.TEXT_EXTRACTION: always_fails}, max_attempts=1)
    job = await job_repo.save(_pending())

    with pytest.raises(DeadLetterWriteError):
        await service.execute_with_retry(job)

    assert job_repo.jobs[job.id].status == JobStatus.FAILED
    assert dead_letter_repo.save_calls == 1


@pytest.mark.asyncio
async def test_missing_document_fails_through_retry_path(make_service, job_repo, dead_letter_repo):
    handler_calls = 0

    async def never_called(job, document):
        nonlocal handler_calls
        handler_calls += 1

    service = make_service({JobType.TEXT_EXTRACTION: never_called}, max_attempts=2)
    job = await job_repo.save(_pending(document_id="doc-missing"))

    final = await service.execute_with_retry(job)

    assert final.status == JobStatus.DEAD_LETTER
    assert handler_calls == 0
    assert "Document" in dead_letter_repo.records[0].error_message


# ── Pipelines and checkpoints ────────────────────────────────────────


@pytest.mark.asyncio
async def test_full_processing_runs_all_stages(make_service, job_repo):
    order = []

    async def extract(job, document):
        order.append("extract")
        assert document.id == "doc-1"
        return {"characters": 1200}

    async def chunk(job, document):
        order.append("chunk")
        return {"processed_chunks_count": 12, "last_processed_chunk_index": 11}

    async def embed(job, document):
        order.append("embed")
        return {"processed_embeddings_count": 12}

    service = make_service(
        {
            JobType.TEXT_EXTRACTION: extract,
            JobType.CHUNKING: chunk,
            JobType.EMBEDDING_GENERATION: embed,
        }
    )
    job = await job_repo.save(_pending(JobType.FULL_PROCESSING))

    final = await service.execute_with_retry(job)

    assert order == ["extract", "chunk", "embed"]
    assert job_repo.progress_updates == [10, 30, 60, 90]
    assert final.status == JobStatus.COMPLETED
    assert final.progress == 100
    assert final.processed_chunks_count == 12
    assert final.last_processed_chunk_index == 11
    assert final.processed_embeddings_count == 12
    assert set(final.result) == {"text_extraction", "chunking", "embedding_generation"}


@pytest.mark.asyncio
async def test_single_stage_checkpoints_are_persisted(make_service, job_repo):
    async def chunk(job, document):
        return {"processed_chunks_count": 4, "last_processed_chunk_index": 3}

    service = make_service({JobType.CHUNKING: chunk})
    job = await job_repo.save(_pending(JobType.CHUNKING))

    final = await service.execute_with_retry(job)

    assert final.status == JobStatus.COMPLETED
    assert final.processed_chunks_count == 4
    assert final.result == {"processed_chunks_count": 4, "last_processed_chunk_index": 3}


@pytest.mark.asyncio
async def test_missing_stage_handler_fails_before_any_transition(make_service, job_repo):
    service = make_service({})
    job = await job_repo.save(_pending(JobType.FULL_PROCESSING))

    with pytest.raises(ConfigurationError):
        await service.execute_with_retry(job)

    assert job_repo.jobs[job.id].status == JobStatus.PENDING
    assert job_repo.transitions == []


# ── Cancellation ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cancel_during_stage_discards_result(make_service, job_repo):
    holder = {}

    async def cancels_midway(job, document):
        await holder["service"].cancel_job(job.id, "user request")
        return {"pages": 1}

    service = make_service({JobType.TEXT_EXTRACTION: cancels_midway})
    holder["service"] = service
    job = await job_repo.save(_pending())

    final = await service.execute_with_retry(job)

    assert final.status == JobStatus.CANCELLED
    assert final.error_message == "user request"
    assert final.result is None


@pytest.mark.asyncio
async def test_cancel_stops_remaining_pipeline_stages(make_service, job_repo):
    holder = {}
    later_stages = []

    async def extract(job, document):
        await holder["service"].cancel_job(job.id)
        return None

    async def later(job, document):
        later_stages.append(job.job_type)

    service = make_service(
        {
            JobType.TEXT_EXTRACTION: extract,
            JobType.CHUNKING: later,
            JobType.EMBEDDING_GENERATION: later,
        }
    )
    holder["service"] = service
    job = await job_repo.save(_pending(JobType.FULL_PROCESSING))

    final = await service.execute_with_retry(job)

    assert final.status == JobStatus.CANCELLED
    assert later_stages == []


@pytest.mark.asyncio
async def test_cancel_pending_job(make_service, job_repo):
    service = make_service({})
    job = await job_repo.save(_pending())

    cancelled = await service.cancel_job(job.id, "no longer needed")

    assert cancelled.status == JobStatus.CANCELLED
    assert job_repo.jobs[job.id].status == JobStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_completed_job_is_rejected(make_service, job_repo):
    service = make_service({})
    job = await job_repo.save(_pending().start().complete())

    with pytest.raises(InvalidTransitionError):
        await service.cancel_job(job.id)


@pytest.mark.asyncio
async def test_cancel_unknown_job_raises_not_found(make_service):
    with pytest.raises(EntityNotFoundError):
        await make_service({}).cancel_job("nope")


# ── Manual retry and lookups ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_retry_job_requeues_failed_job(make_service, job_repo):
    service = make_service({})
    failed = await job_repo.save(_pending().start().fail("boom"))

    retried = await service.retry_job(failed.id)

    assert retried is not None
    assert retried.id == failed.id
    assert retried.status == JobStatus.RETRYING


@pytest.mark.asyncio
async def test_retry_job_refuses_exhausted_or_final_jobs(make_service, job_repo):
    service = make_service({}, max_attempts=1)
    exhausted = await job_repo.save(_pending(JobType.CHUNKING).start().fail("boom"))
    done = await job_repo.save(_pending(JobType.TEXT_EXTRACTION).start().complete())

    assert await service.retry_job(exhausted.id) is None
    assert await service.retry_job(done.id) is None
    assert await service.retry_job("missing") is None
    assert job_repo.jobs[exhausted.id].status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_dead_letter_failed_job_records_and_moves(make_service, job_repo, dead_letter_repo):
    service = make_service({})
    failed = await job_repo.save(_pending().start().fail("timeout"))

    final = await service.dead_letter_failed_job(failed.id)

    assert final.status == JobStatus.DEAD_LETTER
    assert job_repo.jobs[failed.id].status == JobStatus.DEAD_LETTER
    assert dead_letter_repo.save_calls == 1
    assert dead_letter_repo.records[0].attempts == 1
    assert dead_letter_repo.records[0].error_message == "timeout"


@pytest.mark.asyncio
async def test_dead_letter_failed_job_ignores_other_statuses(make_service, job_repo, dead_letter_repo):
    service = make_service({})
    running = await job_repo.save(_pending().start())

    assert await service.dead_letter_failed_job(running.id) is None
    assert await service.dead_letter_failed_job("missing") is None
    assert job_repo.jobs[running.id].status == JobStatus.RUNNING
    assert dead_letter_repo.save_calls == 0


@pytest.mark.asyncio
async def test_final_job_is_returned_untouched(make_service, job_repo):
    called = []

    async def handler(job, document):
        called.append(job.id)

    service = make_service({JobType.TEXT_EXTRACTION: handler})
    done = await job_repo.save(_pending().start().complete({"pages": 1}))

    final = await service.process_job(done.id)

    assert final == done
    assert called == []


@pytest.mark.asyncio
async def test_get_job_not_found(make_service):
    with pytest.raises(EntityNotFoundError):
        await make_service({}).get_job("missing")


@pytest.mark.asyncio
async def test_list_document_jobs(make_service, job_repo):
    await job_repo.save(_pending(JobType.TEXT_EXTRACTION))
    await job_repo.save(_pending(JobType.CHUNKING))
    await job_repo.save(_pending(JobType.CHUNKING, document_id="doc-2", job_id="job-other-doc"))

    jobs = await make_service({}).list_document_jobs("doc-1")
    assert {j.job_type for j in jobs} == {JobType.TEXT_EXTRACTION, JobType.CHUNKING}


def test_dead_letter_service_is_required(job_repo, document_repo):
    with pytest.raises(ConfigurationError):
        ProcessingJobService(
            job_repository=job_repo,
            dead_letter_service=None,
            stage_registry=StageRegistry(),
            document_repository=document_repo,
        )
