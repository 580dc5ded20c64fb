# Shared module for common utilities, models, and configuration
from .config import Settings, get_settings
from .database import Database, JobStore, MemoryJobStore, MongoJobStore
from .models import Job, JobStatus, JobType

__all__ = [
    "Settings",
    "get_settings",
    "Database",
    "JobStore",
    "MemoryJobStore",
    "MongoJobStore",
    "Job",
    "JobStatus",
    "JobType",
]
