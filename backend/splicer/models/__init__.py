# Models module
from splicer.models.job import Job, JobStatus

__all__ = ["Job", "JobStatus"]
