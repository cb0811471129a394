"""
Controller callsign classification.

Network controller callsigns follow SECTOR[_SUBSECTOR]_ROLE, e.g.
EGLL_N_TWR, LON_S_CTR, KNY_APP. This module turns them into an
enumerated role plus the sector prefix so callers never munge
callsign strings inline.
"""

from dataclasses import dataclass
from enum import Enum


class ControllerRole(str, Enum):
    """Position type encoded in the callsign suffix."""
    DELIVERY = 'DEL'
    GROUND = 'GND'
    TOWER = 'TWR'
    APPROACH = 'APP'
    DEPARTURE = 'DEP'
    CENTER = 'CTR'
    FLIGHT_SERVICE = 'FSS'
    ATIS = 'ATIS'
    OBSERVER = 'OBS'
    UNKNOWN = 'UNKNOWN'


_ROLES_BY_SUFFIX = {
    role.value: role for role in ControllerRole if role is not ControllerRole.UNKNOWN
}


@dataclass(frozen=True)
class ControllerPosition:
    """Classified controller position."""
    role: ControllerRole
    sector: str

    def to_dict(self) -> dict:
        return {'role': self.role.value, 'sector': self.sector}


def classify_controller(callsign: str) -> ControllerPosition:
    """
    Classify a controller callsign.

    The sector is the first underscore-separated token. The role is the
    last recognised role token, scanning from the end, so EGLL_TWR_1
    still resolves to TWR.
    """
    parts = [p for p in (callsign or '').strip().upper().split('_') if p]
    if not parts:
        return ControllerPosition(role=ControllerRole.UNKNOWN, sector='')

    sector = parts[0]
    for token in reversed(parts[1:]):
        role = _ROLES_BY_SUFFIX.get(token)
        if role is not None:
            return ControllerPosition(role=role, sector=sector)

    return ControllerPosition(role=ControllerRole.UNKNOWN, sector=sector)
