"""
Shared pytest fixtures for landed cost tests.

Provides:
- Shipment factories (model and JSON payload)
- Fixed engine config and calculation timestamp
- Test client for FastHTML app
"""

import os
import sys
from datetime import datetime, timezone
from decimal import Decimal

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment before importing app
os.environ["APP_SECRET"] = "test-secret"

from calculation_models import EngineConfig, ShipmentInput


FIXED_SNAPSHOT = datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)
FIXED_NOW = datetime(2026, 1, 2, 12, 30, tzinfo=timezone.utc)


# ============================================================================
# FACTORIES
# ============================================================================

def make_shipment(**overrides) -> ShipmentInput:
    """
    Reference shipment: 100 laptops, CN -> US, FOB 1000, sea FCL 40ft.

    Keyword overrides use snake_case field names; pass None to clear a field.
    """
    fields = {
        "product_name": "Laptop",
        "hs_code": "847130",
        "base_cost": Decimal("1000"),
        "incoterm": "FOB",
        "quantity": 100,
        "currency": "USD",
        "origin_country": "CN",
        "destination_country": "US",
        "shipping_method": "sea_fcl",
        "container_type": "40ft",
    }
    fields.update(overrides)
    return ShipmentInput(**fields)


def make_payload(**overrides) -> dict:
    """Reference shipment as a camelCase JSON body."""
    payload = {
        "productName": "Laptop",
        "hsCode": "847130",
        "baseCost": 1000,
        "incoterm": "FOB",
        "quantity": 100,
        "currency": "USD",
        "originCountry": "CN",
        "destinationCountry": "US",
        "shippingMethod": "sea_fcl",
        "containerType": "40ft",
    }
    payload.update(overrides)
    return payload


def make_form(**overrides) -> dict:
    """Reference shipment as calculator form strings."""
    form = {
        "product_name": "Laptop",
        "hs_code": "847130",
        "base_cost": "1000",
        "quantity": "100",
        "currency": "USD",
        "incoterm": "FOB",
        "origin_country": "CN",
        "destination_country": "US",
        "shipping_method": "sea_fcl",
        "container_type": "40ft",
    }
    form.update(overrides)
    return form


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def shipment():
    """Reference CN -> US FOB sea FCL 40ft shipment."""
    return make_shipment()


@pytest.fixture
def engine_config():
    """Default engine config with a fixed snapshot timestamp."""
    return EngineConfig(data_snapshot_timestamp=FIXED_SNAPSHOT)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def app_client():
    """
    Create a test client for the FastHTML app.

    Note: This requires the app to be importable without errors.
    If import fails, tests using this fixture will be skipped.
    """
    try:
        from starlette.testclient import TestClient
        from main import app
    except ImportError as e:
        pytest.skip(f"Cannot create app client: {e}")
    return TestClient(app)
