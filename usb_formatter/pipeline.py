"""Format pipeline: validate -> unmount -> partition -> format.

Every stage is sequential and blocking. A FormatJob carries the request
through the stages and records how far it got; any stage failure marks the
job FAILED and re-raises, so nothing after the failing stage runs and
nothing before it is undone.

The CLI runs the pipeline in two steps so it can ask for confirmation
between validation and the first destructive call:

    run_format_job(job, until=PipelineStage.VALIDATED)
    if confirmed:
        run_format_job(job)
"""

from __future__ import annotations

from typing import Optional

from usb_formatter.config import settings
from usb_formatter.domain.models import (
    PIPELINE_ORDER,
    FormatJob,
    FormatRequest,
    PipelineStage,
)
from usb_formatter.logging import LoggerFactory, operation_context
from usb_formatter.storage.devices import describe_device
from usb_formatter.storage.exceptions import (
    PartitionNodeMissingError,
    PartitionNodeNotConfirmedWarning,
)
from usb_formatter.storage.format import format_partition
from usb_formatter.storage.mount import unmount_device
from usb_formatter.storage.partition import partition_device
from usb_formatter.storage.validation import validate_target


log = LoggerFactory.for_format()


def _validate(job: FormatJob) -> None:
    job.warnings.extend(validate_target(job.device_path, job.root_device))
    job.advance(PipelineStage.VALIDATED)


def _unmount(job: FormatJob) -> None:
    job.unmounted = unmount_device(job.base_device)
    job.advance(PipelineStage.UNMOUNTED)


def _partition(job: FormatJob) -> None:
    if job.size_bytes is None:
        job.size_bytes = describe_device(job.base_device).size_bytes

    attempts = settings.get_int(
        "partition_poll_attempts", settings.DEFAULT_PARTITION_POLL_ATTEMPTS
    )
    spec, confirmed = partition_device(
        job.base_device,
        job.size_bytes,
        gpt_threshold=settings.get_int(
            "gpt_threshold_bytes", settings.GPT_THRESHOLD_BYTES
        ),
        max_attempts=attempts,
        interval=settings.get_float(
            "partition_poll_interval", settings.DEFAULT_PARTITION_POLL_INTERVAL
        ),
        rescan_every=settings.get_int(
            "partition_rescan_every", settings.DEFAULT_PARTITION_RESCAN_EVERY
        ),
    )
    job.partition = spec
    job.partition_confirmed = confirmed

    if not confirmed:
        if job.require_partition_node:
            raise PartitionNodeMissingError(spec.partition_path, attempts)
        warning = PartitionNodeNotConfirmedWarning(spec.partition_path, attempts)
        log.warning(str(warning))
        job.warnings.append(warning)

    job.advance(PipelineStage.PARTITIONED)


def _format(job: FormatJob) -> None:
    assert job.partition is not None
    job.format_request = FormatRequest.create(
        job.partition.partition_path,
        job.label,
        settings.get_setting("default_label", settings.DEFAULT_LABEL),
    )
    format_partition(job.format_request, parent=job.partition.parent)
    job.advance(PipelineStage.FORMATTED)


STAGES = (
    (PipelineStage.VALIDATED, _validate),
    (PipelineStage.UNMOUNTED, _unmount),
    (PipelineStage.PARTITIONED, _partition),
    (PipelineStage.FORMATTED, _format),
)


def run_format_job(
    job: FormatJob, until: Optional[PipelineStage] = None
) -> FormatJob:
    """Run the remaining stages of ``job``.

    Args:
        job: A job that has not failed
        until: Stop once this stage is reached (default: run to FORMATTED)

    Returns:
        The same job, advanced

    Raises:
        ValueError: If the job already failed
        StorageError subclasses from the failing stage; the job is left FAILED
    """
    if job.stage is PipelineStage.FAILED:
        raise ValueError(f"Job for {job.device_path} already failed")

    with operation_context("format", device=job.device_path) as op_log:
        try:
            for target, stage in STAGES:
                if PIPELINE_ORDER.index(target) <= PIPELINE_ORDER.index(job.stage):
                    continue
                stage(job)
                if target is until:
                    break
        except Exception:
            last_stage = job.stage
            job.fail()
            op_log.debug(
                f"Format job for {job.device_path} failed after {last_stage.value}"
            )
            raise
    return job
