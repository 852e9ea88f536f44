"""Mapping from branch topology to the session-join scenario."""

from __future__ import annotations

from enum import Enum

from .repository import TopologySnapshot


class Scenario(str, Enum):
    """How this participant joins the mob session."""

    REJOINING = "rejoining"  # local WIP + remote WIP
    CREATE_FROM_BASE = "create_from_base"  # neither exists
    JOINING = "joining"  # only remote WIP
    PURGE_AND_RECREATE = "purge_and_recreate"  # only local WIP (stale)


_SCENARIOS = {
    (True, True): Scenario.REJOINING,
    (False, False): Scenario.CREATE_FROM_BASE,
    (False, True): Scenario.JOINING,
    (True, False): Scenario.PURGE_AND_RECREATE,
}


def classify(has_local_wip: bool, has_remote_wip: bool) -> Scenario:
    return _SCENARIOS[(bool(has_local_wip), bool(has_remote_wip))]


def classify_snapshot(snapshot: TopologySnapshot) -> Scenario:
    """Classify a snapshot. ``is_mob_programming`` does not take part."""
    return classify(snapshot.has_local_wip, snapshot.has_remote_wip)
