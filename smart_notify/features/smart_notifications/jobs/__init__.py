"""
Job runners for the smart notification feature.
"""

from .profile_refresh_job import run_profile_refresh, start_profile_refresh_scheduler

__all__ = ["run_profile_refresh", "start_profile_refresh_scheduler"]
