"""Queue Policy - Work queue ordering"""
from datetime import datetime
from typing import Iterable, List, Tuple

from ..domain.models import ApplicationCase


def queue_sort_key(case: ApplicationCase) -> Tuple[int, datetime, str]:
    """Most urgent first, then oldest, then by id"""
    return (case.priority, case.created_at, case.application_id)


def queue_order(cases: Iterable[ApplicationCase]) -> List[ApplicationCase]:
    return sorted(cases, key=queue_sort_key)
