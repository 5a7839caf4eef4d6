"""Shared fixtures for the deploy_prune test suite."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple
from unittest.mock import MagicMock

import pytest

from deploy_prune.retention import ObjectRecord

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def at(hours: int) -> datetime:
    """Timestamp ``hours`` after a fixed UTC base time."""
    return BASE_TIME + timedelta(hours=hours)


def records(*pairs: Tuple[str, int]) -> List[ObjectRecord]:
    return [ObjectRecord(key, at(hours)) for key, hours in pairs]


def listing_pages(*pages: List[Tuple[str, int]]) -> List[Dict[str, Any]]:
    """Build list_objects_v2 pages the way boto3's paginator yields them."""
    return [
        {"Contents": [{"Key": key, "LastModified": at(h)} for key, h in page]}
        for page in pages
    ]


@pytest.fixture
def s3_client() -> MagicMock:
    client = MagicMock()
    client.delete_objects.return_value = {"Deleted": []}
    return client


def set_listing(client: MagicMock, *listings: List[Dict[str, Any]]) -> None:
    """Make successive get_paginator().paginate() calls return ``listings``."""
    client.get_paginator.return_value.paginate.side_effect = [
        iter(pages) for pages in listings
    ]
