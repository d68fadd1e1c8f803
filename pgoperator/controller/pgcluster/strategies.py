# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from types import MappingProxyType
from typing import Mapping, Optional

from .. import consts
from ..errors import StrategyNotFoundError
from .strategy import Strategy
from .strategy1 import Strategy1


# Built once at import, never changed afterwards
STRATEGIES: Mapping[str, Strategy] = MappingProxyType({
    "1": Strategy1(),
})


def default_strategy_id(strategy_id: Optional[str]) -> str:
    return strategy_id or consts.DEFAULT_STRATEGY


def resolve_strategy(strategy_id: str) -> Optional[Strategy]:
    return STRATEGIES.get(strategy_id)


def get_strategy(strategy_id: str) -> Strategy:
    strategy = resolve_strategy(strategy_id)
    if strategy is None:
        raise StrategyNotFoundError(strategy_id)
    return strategy
