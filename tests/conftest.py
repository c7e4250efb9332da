"""Pytest configuration and shared fixtures."""

from datetime import date, timedelta

import pytest


STATUSES = ["Active", "Expired", "Pending"]
CONTRACT_TYPES = ["Contract", "PO"]
SERVICES = [
    "Cleaning Services",
    "HVAC Maintenance and Repair",
    "Pest Control",
    "Window cleaning for towers",
    "Security",
    "Landscaping",
    "",
]
NOTES = [
    "Deep clean of common areas weekly",
    "Renewal under review",
    "",
    None,
]


def make_contractor(i: int) -> dict:
    """Deterministic contractor record."""
    start = date(2023, 1, 1) + timedelta(days=(i * 3) % 365)
    end = date(2024, 1, 1) + timedelta(days=(i * 7) % 730)
    monthly = 1000 + (i * 37) % 5000
    return {
        "id": i,
        "contractor_name": f"Contractor {i:04d}",
        "service_provided": SERVICES[i % len(SERVICES)],
        "status": STATUSES[i % len(STATUSES)],
        "contract_type": CONTRACT_TYPES[i % len(CONTRACT_TYPES)],
        "start_date": start.isoformat(),
        "end_date": end.isoformat() if i % 50 else None,
        "contract_monthly_amount": monthly,
        "contract_yearly_amount": monthly * 12,
        "notes": NOTES[i % len(NOTES)],
        "created_at": f"2023-06-{1 + i % 28:02d}T08:00:00Z",
        "updated_at": f"2024-02-{1 + i % 28:02d}T08:00:00Z",
    }


@pytest.fixture
def contractor_records():
    """1,000 deterministic contractor records."""
    return [make_contractor(i) for i in range(1, 1001)]


@pytest.fixture
def small_records():
    """A handful of hand-written records for exact assertions."""
    return [
        {
            "id": 1,
            "contractor_name": "Bravo Cleaning",
            "service_provided": "Cleaning Services",
            "status": "Active",
            "contract_type": "Contract",
            "start_date": "2024-01-01",
            "end_date": "2024-12-31",
            "contract_monthly_amount": 1200,
            "notes": "Covers all towers",
        },
        {
            "id": 2,
            "contractor_name": "alpha Pest",
            "service_provided": "Pest Control",
            "status": "Expired",
            "contract_type": "PO",
            "start_date": "2022-01-01",
            "end_date": "2023-01-01",
            "contract_monthly_amount": 300,
            "notes": "",
        },
        {
            "id": 3,
            "contractor_name": "Charlie HVAC",
            "service_provided": "HVAC Maintenance and Repair",
            "status": "Active",
            "contract_type": "PO",
            "start_date": "2024-06-01",
            "end_date": None,
            "contract_monthly_amount": None,
            "notes": "Quarterly clean of filters",
        },
        {
            "id": 4,
            "contractor_name": "Delta Security",
            "service_provided": "Security",
            "status": "Pending",
            "contract_type": "Contract",
            "start_date": "2025-01-01",
            "end_date": "2025-12-31",
            "contract_monthly_amount": 4500,
            "notes": None,
        },
    ]


class FakeClock:
    """Manually advanced clock for cache and monitor tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()
