"""
Request dependencies
"""

from fastapi import Request

from partmon.core.config import Settings, settings
from partmon.database.report_store import ReportStore

def get_report_store(request: Request) -> ReportStore:
    """Report store created by the application lifespan"""
    return request.app.state.report_store

def get_settings() -> Settings:
    return settings
