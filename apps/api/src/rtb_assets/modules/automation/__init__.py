"""
Automation Module

Scheduled maintenance, warranty, offline and aging checks driven by an
in-memory rule registry. Enabled rules run as APScheduler cron jobs.
"""

from rtb_assets.modules.automation.jobs import register_automation_jobs
from rtb_assets.modules.automation.router import router

__all__ = ["router", "register_automation_jobs"]
