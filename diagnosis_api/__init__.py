"""Profile Diagnosis API - cached AI critique of Instagram profiles."""

from .api import app, create_app
from .diagnosis import DiagnosisService
from .models import DiagnoseRequest, DiagnoseResponse, Mode
from .rate_limit import RateLimiter

__version__ = "1.0.0"

__all__ = [
    "DiagnoseRequest",
    "DiagnoseResponse",
    "DiagnosisService",
    "Mode",
    "RateLimiter",
    "app",
    "create_app",
]
