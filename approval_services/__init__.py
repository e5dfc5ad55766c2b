"""Outer orchestration: bootstrap, submit governed actions, apply decisions, seed configuration."""

from approval_services.runtime import bootstrap
from approval_services.orchestrator import ApprovalOrchestrator, SubmissionResult
from approval_services.seeding import SeedReport, seed_company, seed_from_config

__all__ = [
    "bootstrap",
    "ApprovalOrchestrator",
    "SeedReport",
    "SubmissionResult",
    "seed_company",
    "seed_from_config",
]
