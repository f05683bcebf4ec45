"""
Pytest configuration and shared fixtures for Journey AutoGen tests.
"""

import pytest
import sys
from pathlib import Path

# Add backend app to path
sys.path.insert(0, str(Path(__file__).parent.parent / "app"))

from journey_autogen.config import AutogenConfig
from journey_autogen.context import AutogenContext


# ==================== Journey Fixtures ====================

SAMPLE_JOURNEY = """---
id: JRN-0001
title: User logs in and sees dashboard
status: clarified
tier: smoke
scope: auth
actor: standard-user
modules:
  foundation: [auth]
  features: []
completion:
  - type: url
    value: /dashboard
  - type: toast
    value: Welcome back
tags: [login]
---

## Acceptance Criteria

### AC-1: User signs in
- User navigates to /login
- User enters 'alice@example.com' in 'Email' field
- Click the Submit button

### AC-2: Dashboard is shown
- User should see 'Dashboard'
- Drag the item to the dropzone

## Procedural Steps

1. User navigates to /login (AC-1)
2. User waits for network idle (AC-1)
"""


@pytest.fixture
def sample_journey_markdown():
    """A clarified journey with two ACs, one blocked step and linked procedural steps."""
    return SAMPLE_JOURNEY


@pytest.fixture
def draft_journey_markdown():
    """Same journey, but not yet clarified."""
    return SAMPLE_JOURNEY.replace("status: clarified", "status: defined")


# ==================== Config / Context Fixtures ====================

@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary data directory."""
    data_dir = tmp_path / "autogen"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def autogen_config(temp_data_dir):
    """Config whose state, telemetry and learned patterns live in a temp dir."""
    return AutogenConfig(data_dir=str(temp_data_dir))


@pytest.fixture
def autogen_ctx(autogen_config):
    """Fresh run context bound to the temp config."""
    return AutogenContext(config=autogen_config)


# ==================== Playwright Output Fixtures ====================

@pytest.fixture
def selector_failure_output():
    """Line-reporter output for a strict mode violation."""
    return (
        "Running 1 test using 1 worker\n"
        "\n"
        "  1) [chromium] › tests/jrn-0001.spec.ts:12:7 › JRN-0001: User logs in ──────────\n"
        "\n"
        "    Error: locator.click: strict mode violation: getByRole('button') resolved to 2 elements\n"
        "\n"
        "       at tests/jrn-0001.spec.ts:20:45\n"
        "\n"
        "  1 failed\n"
    )


@pytest.fixture
def two_failure_output():
    """Output with a timeout failure followed by an assertion failure."""
    return (
        "  1) [chromium] › tests/a.spec.ts:5:3 › JRN-0002: Checkout ───\n"
        "\n"
        "    TimeoutError: locator.click: Timeout 30000ms exceeded.\n"
        "\n"
        "  2) [chromium] › tests/b.spec.ts:9:3 › JRN-0003: Profile ───\n"
        "\n"
        "    Error: expect(received).toHaveText(expected)\n"
        "    Expected string: \"Welcome\"\n"
        "    Received string: \"Hello\"\n"
        "\n"
        "  2 failed\n"
    )
