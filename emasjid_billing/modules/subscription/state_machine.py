from typing import Dict, FrozenSet, Union

from emasjid_billing.models.enums import SubscriptionStatus as S

ALLOWED_TRANSITIONS: Dict[S, FrozenSet[S]] = {
    S.TRIAL: frozenset({S.ACTIVE, S.CANCELLED}),
    S.ACTIVE: frozenset({S.GRACE_PERIOD, S.CANCELLED}),
    S.GRACE_PERIOD: frozenset({S.ACTIVE, S.SOFT_LOCKED, S.CANCELLED}),
    S.SOFT_LOCKED: frozenset({S.ACTIVE, S.CANCELLED}),
    S.CANCELLED: frozenset(),
}


def can_transition(current: Union[S, str], target: Union[S, str]) -> bool:
    return S(target) in ALLOWED_TRANSITIONS[S(current)]
