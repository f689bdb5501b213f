"""Assembly of per-model results into a job result."""
from typing import Sequence
from imitator_runner.runner.models import ExecutionResult, Job, JobResult


class OutputAggregator:
    """Builds a JobResult once every model of a job has finished."""

    def aggregate(self, job: Job, results: Sequence[ExecutionResult]) -> JobResult:
        """
        Assemble the job result.

        Results keep dispatch order, so the n-th output belongs to the n-th
        model.

        Args:
            job: Job the results belong to
            results: Finalized results in dispatch order

        Returns:
            JobResult: Aggregated result

        Raises:
            ValueError: If results do not line up with the job's models
        """
        prefixes = [result.prefix for result in results]
        if prefixes != job.prefixes:
            raise ValueError(
                f"Results {prefixes} do not match the models of job {job.identifier}"
            )
        unfinished = [result.prefix for result in results if not result.finalized]
        if unfinished:
            raise ValueError(f"Results not finalized: {', '.join(unfinished)}")

        return JobResult(
            identifier=job.identifier,
            options=list(job.options),
            models=[model.original_name for model in job.models],
            property_name=job.property_name,
            outputs=list(results),
            created_at=job.created_at,
        )
