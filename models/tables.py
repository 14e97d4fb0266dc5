"""
Every ORM model in one import.

Base.metadata only knows the tables whose modules were imported, and the
jobs → pipelines foreign key needs both. Anything calling create_all()
imports Base from here.
"""

from models.base import Base
from models.job import Job
from models.pipeline import Pipeline
from models.worker import Worker

__all__ = ["Base", "Job", "Pipeline", "Worker"]
