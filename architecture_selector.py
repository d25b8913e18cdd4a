"""
Radio Quote Expert - Architecture Selector

Responsibilities:
  1. Static reference data for the five supported system topologies
  2. Deterministic selection from total users and multi-site flag
  3. Capacity checks reused by the safety validator
  4. Per-architecture repeater limits reused by pricing
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from models import DeploymentRequirement, SystemArchitecture

logger = logging.getLogger(__name__)


# ============================================================
# Architecture Profiles
# ============================================================

@dataclass(frozen=True)
class ArchitectureProfile:
    """Fixed capability attributes of one system topology."""
    architecture: SystemArchitecture
    max_users: int
    max_sites: int
    requires_repeater: bool
    complexity_level: int
    cost_multiplier: float
    max_repeaters_per_site: int
    multi_site_capable: bool
    description: str = ""


ARCHITECTURE_PROFILES: dict[SystemArchitecture, ArchitectureProfile] = {
    SystemArchitecture.CONVENTIONAL: ArchitectureProfile(
        architecture=SystemArchitecture.CONVENTIONAL,
        max_users=100,
        max_sites=1,
        requires_repeater=True,
        complexity_level=2,
        cost_multiplier=1.0,
        max_repeaters_per_site=1,
        multi_site_capable=False,
        description='Single repeater, single site, basic talkgroups',
    ),
    SystemArchitecture.IP_SITE_CONNECT: ArchitectureProfile(
        architecture=SystemArchitecture.IP_SITE_CONNECT,
        max_users=250,
        max_sites=15,
        requires_repeater=True,
        complexity_level=3,
        cost_multiplier=1.5,
        max_repeaters_per_site=2,
        multi_site_capable=True,
        description='Repeaters at each site linked over IP for wide-area coverage',
    ),
    SystemArchitecture.CAPACITY_PLUS: ArchitectureProfile(
        architecture=SystemArchitecture.CAPACITY_PLUS,
        max_users=500,
        max_sites=1,
        requires_repeater=True,
        complexity_level=4,
        cost_multiplier=1.8,
        max_repeaters_per_site=12,
        multi_site_capable=False,
        description='Single-site trunking across up to 12 repeaters',
    ),
    SystemArchitecture.LINKED_CAPACITY_PLUS: ArchitectureProfile(
        architecture=SystemArchitecture.LINKED_CAPACITY_PLUS,
        max_users=1500,
        max_sites=15,
        requires_repeater=True,
        complexity_level=4,
        cost_multiplier=2.5,
        max_repeaters_per_site=12,
        multi_site_capable=True,
        description='Multi-site trunking with Capacity Plus at every site',
    ),
    SystemArchitecture.CAPACITY_MAX: ArchitectureProfile(
        architecture=SystemArchitecture.CAPACITY_MAX,
        max_users=3000,
        max_sites=48,
        requires_repeater=True,
        complexity_level=5,
        cost_multiplier=3.0,
        max_repeaters_per_site=15,
        multi_site_capable=True,
        description='Controller-based trunking for large multi-site fleets',
    ),
}

_missing = set(SystemArchitecture) - set(ARCHITECTURE_PROFILES)
if _missing:
    raise RuntimeError(f"Architecture profiles missing for: {sorted(a.value for a in _missing)}")


# Decision table, evaluated top-down: (multi_site, user ceiling, architecture).
# A ceiling of None catches everything above the previous row.
SELECTION_TABLE: list[tuple[bool, Optional[int], SystemArchitecture]] = [
    (False, 50, SystemArchitecture.CONVENTIONAL),
    (False, 500, SystemArchitecture.CAPACITY_PLUS),
    (False, None, SystemArchitecture.CAPACITY_MAX),
    (True, 250, SystemArchitecture.IP_SITE_CONNECT),
    (True, 1500, SystemArchitecture.LINKED_CAPACITY_PLUS),
    (True, None, SystemArchitecture.CAPACITY_MAX),
]


# ============================================================
# Selection
# ============================================================

def select_architecture(total_users: int, is_multi_site: bool) -> SystemArchitecture:
    """Map a user count and multi-site flag to one architecture."""
    for multi, ceiling, arch in SELECTION_TABLE:
        if multi != is_multi_site:
            continue
        if ceiling is None or total_users <= ceiling:
            return arch
    # Unreachable: every branch ends with an open ceiling
    raise RuntimeError("architecture selection table is incomplete")


def select_for(requirement: DeploymentRequirement) -> SystemArchitecture:
    arch = select_architecture(requirement.total_users, requirement.is_multi_site)
    logger.debug(
        "Selected %s for %d users across %d site(s)",
        arch.value, requirement.total_users, requirement.site_count,
    )
    return arch


def architecture_profile(arch: SystemArchitecture) -> ArchitectureProfile:
    return ARCHITECTURE_PROFILES[arch]


def capability_tier(arch: SystemArchitecture) -> int:
    return ARCHITECTURE_PROFILES[arch].complexity_level


def supports(arch: SystemArchitecture, total_users: int, site_count: int) -> bool:
    """True when the architecture can carry this many users and sites."""
    p = ARCHITECTURE_PROFILES[arch]
    if site_count > 1 and not p.multi_site_capable:
        return False
    return total_users <= p.max_users and site_count <= p.max_sites


def repeater_limit(arch: SystemArchitecture, site_count: int) -> int:
    p = ARCHITECTURE_PROFILES[arch]
    sites = max(1, min(site_count, p.max_sites))
    return p.max_repeaters_per_site * sites

