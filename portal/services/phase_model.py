"""Onboarding phase model.

WHAT:
    The ordered list of customer lifecycle phases and the pure functions that
    derive a completion percentage and "step reached" flags from a phase name.

WHY:
    Percent and ordinal both come from the single `PHASES` tuple, so the
    dashboard progress bar and the step indicators can never disagree.

REFERENCES:
    - portal/services/progress_store.py (persists phase transitions)
    - portal/routers/admin.py (tracking view uses `step_flags`)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Phase:
    name: str
    percent: int
    label: str


PHASES: Tuple[Phase, ...] = (
    Phase("onboarding", 20, "Checkliste"),
    Phase("landingpage", 40, "Landingpage"),
    Phase("ads", 60, "Werbeanzeigen"),
    Phase("whatsapp", 80, "WhatsApp-Bot"),
    Phase("webinar", 100, "Webinar"),
)

INITIAL_PHASE = PHASES[0].name
FINAL_PHASE = PHASES[-1].name
MIN_PERCENT = PHASES[0].percent

_BY_NAME: Dict[str, Tuple[int, Phase]] = {
    phase.name: (position + 1, phase) for position, phase in enumerate(PHASES)
}


def normalize_phase(phase_name: Optional[str]) -> Optional[str]:
    """Return the canonical phase name, or None when it is not a known phase."""
    if not phase_name:
        return None
    key = phase_name.strip().lower()
    return key if key in _BY_NAME else None


def ordinal_for(phase_name: Optional[str]) -> int:
    """1-based position of the phase; unknown phases count as just started."""
    canonical = normalize_phase(phase_name)
    if canonical is None:
        return 1
    return _BY_NAME[canonical][0]


def percent_for(phase_name: Optional[str]) -> int:
    """Completion percentage for a phase; unknown phases map to the minimum."""
    canonical = normalize_phase(phase_name)
    if canonical is None:
        return MIN_PERCENT
    return _BY_NAME[canonical][1].percent


def is_step_reached(step_index: int, phase_name: Optional[str]) -> bool:
    """True iff the 1-based `step_index` is at or before the given phase."""
    return step_index <= ordinal_for(phase_name)


def next_phase(phase_name: str) -> Optional[str]:
    """Successor of a known phase, None for the final phase."""
    position = ordinal_for(phase_name)
    if position >= len(PHASES):
        return None
    return PHASES[position].name


def phases_before(phase_name: str) -> List[str]:
    """Names of all phases ordered strictly before the given one."""
    return [phase.name for phase in PHASES[: ordinal_for(phase_name) - 1]]


def step_flags(phase_name: Optional[str]) -> List[dict]:
    """One entry per phase with its ordinal, percent and whether it is reached."""
    return [
        {
            "step": position,
            "phase": phase.name,
            "label": phase.label,
            "percent": phase.percent,
            "reached": is_step_reached(position, phase_name),
        }
        for position, phase in enumerate(PHASES, start=1)
    ]
