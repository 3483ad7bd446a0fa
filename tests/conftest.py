"""
Shared fixtures.
"""
import pytest
from datachat.core.config import reload_settings
from datachat.core.performance import PerformanceMonitor
from datachat.core.schemas import LLMConfig

VALID_KEY = "gsk_" + "a" * 40


@pytest.fixture(autouse=True)
def fresh_settings():
    """Every test starts from environment defaults."""
    reload_settings()
    yield
    reload_settings()


@pytest.fixture
def sales_rows():
    """Small sales table as the CSV parser delivers it: every cell a string."""
    return [
        {"Region": "North", "City": "Leeds", "Sales": "100", "Profit": "10", "Date": "2024-01-01"},
        {"Region": "South", "City": "Bristol", "Sales": "250", "Profit": "30", "Date": "2024-01-02"},
        {"Region": "North", "City": "York", "Sales": "150", "Profit": "20", "Date": "2024-01-03"},
        {"Region": "East", "City": "Norwich", "Sales": "50", "Profit": "5", "Date": "2024-01-04"},
        {"Region": "South", "City": "Bristol", "Sales": "200", "Profit": "25", "Date": "2024-01-05"},
    ]


@pytest.fixture
def llm_config():
    return LLMConfig(model="llama-3.1-8b-instant", credential=VALID_KEY)


@pytest.fixture
def clean_metrics():
    PerformanceMonitor.clear_metrics()
    yield
    PerformanceMonitor.clear_metrics()
