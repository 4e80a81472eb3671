# conftest.py
import sys
import os
from datetime import datetime, timezone
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.deps import SCOPE_EVALUATE, SCOPE_SNAPSHOTS
from app.main import app
from app.schemas import (
    EvaluationContext,
    ExperimentDefinition,
    ExperimentVariant,
    FeatureRule,
    RuleSource,
)
from app.utils.security import issue_token

TENANT = "tenant-123"
SUBJECT = "user-456"

# -----------------------------
# Domain fixtures
# -----------------------------
@pytest.fixture
def now():
    return datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def context(now):
    return EvaluationContext(
        tenant_id=TENANT,
        subject_id=SUBJECT,
        group_ids={"beta-testers"},
        partner_id="partner-acme",
        plan_id="plan-enterprise",
        now=now,
    )


@pytest.fixture
def rules():
    return [
        FeatureRule(id="r1", feature_id="feature-premium", tenant_id=TENANT,
                    source=RuleSource.TENANT, enabled=True),
        FeatureRule(id="r2", feature_id="feature-beta", tenant_id=TENANT,
                    source=RuleSource.SYSTEM, enabled=False),
    ]


@pytest.fixture
def experiment():
    return ExperimentDefinition(
        id="exp-1",
        name="Test Experiment",
        tenant_id=TENANT,
        salt="salt-1",
        variants=[
            ExperimentVariant(id="control", name="Control", traffic_allocation=50),
            ExperimentVariant(id="treatment", name="Treatment", traffic_allocation=50),
        ],
    )


# -----------------------------
# Auth token for API requests
# -----------------------------
@pytest.fixture(scope="function")
def auth_token():
    return issue_token(client_id="test-client", scopes=[SCOPE_EVALUATE, SCOPE_SNAPSHOTS])

# -----------------------------
# Authorized HTTP client
# -----------------------------
@pytest_asyncio.fixture(scope="function")
async def authorized_client(auth_token):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        client.headers.update({
            "Authorization": f"Bearer {auth_token}",
            "X-Tenant-ID": TENANT
        })
        yield client

# -----------------------------
# Public (unauthorized) HTTP client
# -----------------------------
@pytest_asyncio.fixture(scope="function")
async def public_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
