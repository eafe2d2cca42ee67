"""Supervised background execution of processing jobs."""

from manuscript_pipeline.workers.supervisor import JobSupervisor

__all__ = ["JobSupervisor"]
