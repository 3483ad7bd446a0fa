"""
Metrics endpoint for performance monitoring.
"""
from fastapi import APIRouter
from datachat.core.performance import PerformanceMonitor

router = APIRouter()


@router.get("/metrics")
async def get_metrics():
    """
    Get timing statistics for every tracked operation: profiling, the model
    call, response normalization, upload parsing and whole requests.
    """
    return {'performance': PerformanceMonitor.get_all_metrics()}
