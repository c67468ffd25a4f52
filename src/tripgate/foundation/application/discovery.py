"""Entry-point discovery of tripgate contributions.

The ``tripgate.routers``, ``tripgate.middleware``, ``tripgate.error_handlers``
and ``tripgate.lifespan`` groups are declared in ``pyproject.toml``.
:func:`discover` loads one group. A broken entry point never stops the
application from starting: it is logged and left out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DiscoveredContribution:
    """One loaded entry point.

    Attributes:
        name: Entry point name, e.g. ``credential_auth``.
        group: Group it was found in, e.g. ``tripgate.middleware``.
        value: The loaded object.
        distribution: Name of the installed distribution declaring it, if known.
    """

    name: str
    group: str
    value: Any
    distribution: str | None = None


def discover(
    group: str,
    *,
    exclude_names: frozenset[str] = frozenset(),
    expect: type | tuple[type, ...] | None = None,
) -> list[DiscoveredContribution]:
    """Load the entry points of ``group``.

    Args:
        group: Entry point group name.
        exclude_names: Names to skip without importing them.
        expect: When given, loaded values that are not instances of it are
            logged and dropped.

    Returns:
        Loaded contributions in entry-point iteration order.
    """
    contributions: list[DiscoveredContribution] = []

    for ep in entry_points(group=group):
        if ep.name in exclude_names:
            logger.debug("entry_point_excluded", extra={"group": group, "name": ep.name})
            continue
        dist = getattr(ep, "dist", None)
        distribution = getattr(dist, "name", None) if dist is not None else None
        try:
            loaded = ep.load()
        except Exception:
            logger.exception(
                "entry_point_load_failed",
                extra={"group": group, "name": ep.name, "distribution": distribution},
            )
            continue
        if expect is not None and not isinstance(loaded, expect):
            logger.warning(
                "entry_point_wrong_type",
                extra={"group": group, "name": ep.name, "type": type(loaded).__name__},
            )
            continue
        contributions.append(
            DiscoveredContribution(
                name=ep.name, group=group, value=loaded, distribution=distribution
            )
        )

    logger.info(
        "entry_points_discovered",
        extra={"group": group, "names": [c.name for c in contributions]},
    )
    return contributions
