"""Quota collaborators for new root projects."""

from __future__ import annotations

from typing import Callable, Optional

from .interfaces import ProjectQuota, QuotaDecision


class UnlimitedQuota(ProjectQuota):
    """Always allows new projects and keeps the caller's license id."""

    def validate_project_creation(self, license_id: Optional[str]) -> QuotaDecision:
        return QuotaDecision(can_create=True, license_id=license_id)


class RootLimitQuota(ProjectQuota):
    """Allow at most ``max_projects`` instance roots per license.

    Parameters
    ----------
    max_projects:
        Limit per license id.
    count_projects:
        ``(license_id) -> int`` returning how many projects already use
        that license.
    default_license_id:
        License used when the caller passes none.
    """

    def __init__(
        self,
        max_projects: int,
        count_projects: Callable[[Optional[str]], int],
        default_license_id: Optional[str] = None,
    ) -> None:
        if max_projects < 1:
            raise ValueError("max_projects must be >= 1")
        self.max_projects = max_projects
        self._count_projects = count_projects
        self.default_license_id = default_license_id

    def validate_project_creation(self, license_id: Optional[str]) -> QuotaDecision:
        license_id = license_id or self.default_license_id
        used = self._count_projects(license_id)
        if used >= self.max_projects:
            label = license_id or "the default license"
            return QuotaDecision(
                can_create=False,
                reason=f"Project limit reached for {label} ({used}/{self.max_projects})",
                license_id=license_id,
            )
        return QuotaDecision(can_create=True, license_id=license_id)
