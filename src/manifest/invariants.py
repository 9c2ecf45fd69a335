"""Cardinality checks run before any write.

Each check works on records already fetched for one partition (every record
of a version, or every record of an environment) and compares per-name match
counts against the allowed range. The store cannot filter by a list of names,
so the match happens here.
"""
import logging
from collections import Counter
from typing import Iterable, List, Optional, Protocol, Sequence

from .errors import InvariantViolation

logger = logging.getLogger(__name__)


class _Named(Protocol):
    deployable: str


def _counts(records: Iterable[_Named], names: Sequence[str]) -> Counter:
    wanted = set(names)
    return Counter(record.deployable for record in records if record.deployable in wanted)


def _fail(
    check: str,
    table: str,
    partition: str,
    detail: str,
    names: List[str],
    counts: Optional[Counter] = None,
) -> None:
    if counts is None:
        described = ", ".join(names)
    else:
        described = ", ".join(f"{name} ({counts[name]})" for name in names)
    message = f"{check} (table: {table}):: {detail} for {partition} and deployables: {described}"
    logger.error(message, extra={"table": table, "partition": partition, "deployables": names})
    raise InvariantViolation(message, table=table, partition=partition, names=names)


def assert_none_exist(
    table: str, records: Iterable[_Named], partition: str, names: Sequence[str]
) -> None:
    """Fail if any of ``names`` already has a record in ``records``.

    ``partition`` describes what the records were fetched by, e.g.
    ``"version: 1.0.0"``, and is only used in the failure message.
    """
    counts = _counts(records, names)
    existing = [name for name in names if counts[name] >= 1]
    if existing:
        _fail("assert_none_exist", table, partition, "record(s) already exist", existing, counts)


def assert_exactly_one_each(
    table: str, records: Iterable[_Named], partition: str, names: Sequence[str]
) -> None:
    """Fail if any of ``names`` has no record or more than one."""
    counts = _counts(records, names)
    missing = [name for name in names if counts[name] == 0]
    if missing:
        _fail("assert_exactly_one_each", table, partition, "no record found", missing)
    duplicated = [name for name in names if counts[name] > 1]
    if duplicated:
        _fail("assert_exactly_one_each", table, partition, "multiple records found", duplicated, counts)


def assert_at_most_one_each(
    table: str, records: Iterable[_Named], partition: str, names: Sequence[str]
) -> None:
    """Fail if any of ``names`` has more than one record; zero is fine."""
    counts = _counts(records, names)
    duplicated = [name for name in names if counts[name] > 1]
    if duplicated:
        _fail("assert_at_most_one_each", table, partition, "multiple records found", duplicated, counts)
