"""
Copy-number state labels.

States are declared by the caller as an ordered list of labels, e.g.
('zero-inflation', 'monosomy', 'disomy', 'trisomy') or the numeric form
('zero-inflation', '0-somy', '1-somy', '2-somy'). Each label is parsed into a
State carrying its copy-number multiplier, which is what the emission model
uses to scale the count distribution.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Sequence, Tuple

from aneuhmm.core.config import ConfigurationError


class StateKind(str, Enum):
    ZERO_INFLATION = 'zero-inflation'
    NULLSOMY = 'nullsomy'
    SOMY = 'somy'


# Named ploidies; 'multisomy' is resolved relative to the other states
NAMED_MULTIPLIERS = {
    'nullsomy': 0,
    'monosomy': 1,
    'disomy': 2,
    'trisomy': 3,
    'tetrasomy': 4,
    'pentasomy': 5,
    'hexasomy': 6,
    'heptasomy': 7,
    'octasomy': 8,
    'nonasomy': 9,
}

MULTISOMY = 'multisomy'
ZERO_INFLATION = 'zero-inflation'
JOINT_SEPARATOR = '|'
_NUMERIC_SOMY = re.compile(r'^(\d+)-somy$')


@dataclass(frozen=True)
class State:
    """One hidden state: label, copy-number multiplier and distribution kind."""
    label: str
    multiplier: int
    kind: StateKind

    @property
    def is_somy(self) -> bool:
        return self.kind == StateKind.SOMY


def _parse_multiplier(label: str):
    if label in NAMED_MULTIPLIERS:
        return NAMED_MULTIPLIERS[label]
    match = _NUMERIC_SOMY.match(label)
    if match:
        return int(match.group(1))
    return None


def parse_states(labels: Iterable[str]) -> Tuple[State, ...]:
    """
    Parse state labels into State objects.

    Joint labels '<minus>|<plus>' of the bivariate model are parsed per
    strand; their multiplier is the total copy number.

    Raises:
        ConfigurationError: empty list, duplicate labels or unknown labels
    """
    labels = [str(label) for label in labels]
    if len(labels) == 0:
        raise ConfigurationError("At least one state has to be given.")
    if len(set(labels)) != len(labels):
        raise ConfigurationError(f"Duplicate state labels in {labels}")

    parts = [part for label in labels for part in label.split(JOINT_SEPARATOR)]
    known = [m for m in (_parse_multiplier(part) for part in parts) if m is not None]
    multisomy_multiplier = max([5] + [m + 1 for m in known])

    states = []
    for label in labels:
        halves = [_parse_single(part, multisomy_multiplier)
                  for part in label.split(JOINT_SEPARATOR)]
        if len(halves) == 1:
            states.append(State(label, *halves[0]))
            continue
        multiplier = sum(m for m, _ in halves)
        if multiplier > 0:
            kind = StateKind.SOMY
        elif all(k == StateKind.ZERO_INFLATION for _, k in halves):
            kind = StateKind.ZERO_INFLATION
        else:
            kind = StateKind.NULLSOMY
        states.append(State(label, multiplier, kind))
    return tuple(states)


def _parse_single(label: str, multisomy_multiplier: int) -> Tuple[int, StateKind]:
    if label == ZERO_INFLATION:
        return 0, StateKind.ZERO_INFLATION
    if label == MULTISOMY:
        return multisomy_multiplier, StateKind.SOMY
    multiplier = _parse_multiplier(label)
    if multiplier is None:
        raise ConfigurationError(
            f"Unknown state '{label}'. Use 'zero-inflation', a named ploidy "
            f"(e.g. 'disomy', 'multisomy') or '<k>-somy'."
        )
    return multiplier, StateKind.NULLSOMY if multiplier == 0 else StateKind.SOMY


class StateSet:
    """Ordered, validated set of states with a designated most-frequent state."""

    def __init__(self, labels: Sequence[str], most_frequent: str = None):
        self.states: Tuple[State, ...] = parse_states(labels)
        self.labels: Tuple[str, ...] = tuple(s.label for s in self.states)
        self._index = {label: i for i, label in enumerate(self.labels)}

        if most_frequent is None:
            somy = [s for s in self.states if s.is_somy]
            most_frequent = somy[0].label if somy else self.labels[0]
        if most_frequent not in self._index:
            most_frequent = self._equivalent_label(most_frequent)
        if most_frequent not in self._index:
            raise ConfigurationError(
                f"most_frequent_state '{most_frequent}' must be one of {list(self.labels)}"
            )
        if not self.states[self._index[most_frequent]].is_somy:
            raise ConfigurationError(
                f"most_frequent_state '{most_frequent}' must have a copy number > 0"
            )
        self.most_frequent = most_frequent

    def __len__(self) -> int:
        return len(self.states)

    def __iter__(self):
        return iter(self.states)

    def __getitem__(self, i) -> State:
        return self.states[i]

    def __eq__(self, other) -> bool:
        if not isinstance(other, StateSet):
            return NotImplemented
        return self.labels == other.labels

    def __hash__(self):
        return hash(self.labels)

    def __repr__(self) -> str:
        return f"StateSet({list(self.labels)}, most_frequent='{self.most_frequent}')"

    def _equivalent_label(self, label: str) -> str:
        """Map a named ploidy onto its numeric form and back (monosomy <-> 1-somy)."""
        multiplier = _parse_multiplier(str(label))
        if multiplier is None:
            return label
        for state in self.states:
            if state.kind != StateKind.ZERO_INFLATION and state.multiplier == multiplier:
                return state.label
        return label

    def index(self, label: str) -> int:
        return self._index[label]

    @property
    def most_frequent_index(self) -> int:
        return self._index[self.most_frequent]

    @property
    def multipliers(self) -> List[int]:
        return [s.multiplier for s in self.states]

    def indices_of(self, kind: StateKind) -> List[int]:
        return [i for i, s in enumerate(self.states) if s.kind == kind]
