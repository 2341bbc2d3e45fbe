"""Batched counting of ESTABLISHED connections per (port, pid)."""

import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable

from .errors import PortboardError

logger = logging.getLogger(__name__)

PortPid = tuple[int, int]


def count_connections(records: Iterable[PortPid], pairs: Iterable[PortPid]) -> dict[PortPid, int]:
    """Count established connections for each requested (port, pid).

    Args:
        records: One (local_port, pid) entry per established connection
        pairs: Keys the caller needs a count for; duplicates collapse

    Returns:
        Map with every requested key; absent keys count as 0
    """
    counts = Counter(records)
    return {pair: counts.get(pair, 0) for pair in pairs}


async def batch_connection_counts(
    query: Callable[[list[int]], Awaitable[str]],
    parse: Callable[[str], list[PortPid]],
    pairs: Iterable[PortPid],
) -> dict[PortPid, int]:
    """Count connections for many (port, pid) pairs with one system query.

    Args:
        query: Runs the OS tool once and returns its output. Receives the
            distinct owning pids so tools that can filter by pid may do so.
        parse: Turns the output into (local_port, pid) records
        pairs: Requested keys

    Returns:
        Map of (port, pid) -> count. Empty input returns {} without running
        the query; a failed query maps every key to 0.
    """
    wanted = list(dict.fromkeys(pairs))
    if not wanted:
        return {}

    pids = sorted({pid for _, pid in wanted})
    try:
        output = await query(pids)
    except (PortboardError, OSError) as e:
        logger.debug("Connection count query failed: %s", e)
        return {pair: 0 for pair in wanted}

    return count_connections(parse(output), wanted)
