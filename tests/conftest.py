# ===============================================================================
# PYTEST CONFIGURATION FOR CLASSLANE PLATFORM
# ===============================================================================
"""
Global test configuration for Classlane Platform.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Shared model factories live in tests/factories/

Test Discovery:
- Run specific app tests: pytest tests/billing/
- Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.test")

    # Configure Django
    django.setup()


# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================

import pytest  # noqa: E402

from tests.factories.core_factories import (  # noqa: E402
    create_account,
    create_course,
    create_course_class,
    create_student,
)


@pytest.fixture
def parent_account():
    """Unpaid parent account without a referer"""
    return create_account(username="parent")


@pytest.fixture
def student(parent_account):
    return create_student(parent_account)


@pytest.fixture
def regular_class():
    """One class of a regular $100 course"""
    return create_course_class(create_course(name="Python Level 1", level=1, price_cents=10000))
