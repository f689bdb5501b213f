"""Prometheus metrics for Imitator Runner."""
from prometheus_client import Counter, Gauge, Histogram, Info
from imitator_runner.core.enums import ExecutionStatus


# Job metrics
jobs_started_total = Counter(
    'imitator_jobs_started_total',
    'Total number of jobs dispatched'
)

jobs_finished_total = Counter(
    'imitator_jobs_finished_total',
    'Total number of finished jobs',
    ['outcome']
)

# Model run metrics
model_runs_total = Counter(
    'imitator_model_runs_total',
    'Total number of model runs',
    ['status']
)

model_run_duration_seconds = Histogram(
    'imitator_model_run_duration_seconds',
    'Model run duration in seconds',
    ['status'],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 900.0, 3600.0]
)

models_running = Gauge(
    'imitator_models_running',
    'Number of tool processes currently running'
)

# System info
system_info = Info(
    'imitator_runner_system',
    'Imitator Runner system information'
)


def record_job_started() -> None:
    """Record job dispatch metric."""
    jobs_started_total.inc()


def record_job_finished(outcome: str) -> None:
    """Record job outcome metric (succeeded, failed or aborted)."""
    jobs_finished_total.labels(outcome=outcome).inc()


def record_model_run(status: ExecutionStatus, duration: float) -> None:
    """Record a finished model run."""
    model_runs_total.labels(status=status.value).inc()
    model_run_duration_seconds.labels(status=status.value).observe(duration)


def init_system_info(version: str) -> None:
    """
    Initialize system information metric.

    Args:
        version: Application version
    """
    system_info.info({
        'version': version,
        'name': 'Imitator Runner'
    })
