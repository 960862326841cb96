"""
Persistence access for jobs and the organization directory.
"""

from .job_repository import JobRepository
from .organization_repository import OrganizationRepository

__all__ = ["JobRepository", "OrganizationRepository"]
