"""
Synchronous event dispatch for the reactive rules.

Stages, in the order the entity store fires them for a write:

    prepare     raw caller values, before type coercion (strip non-writable fields)
    derive      merged, coerced row (compute derived columns)
    check       validated row whose references resolve (cross-row guards)
    after_write row has been flushed (synchronise dependent rows)
    after_delete row has been removed inside a delete closure
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

STAGES = ("prepare", "derive", "check", "after_write", "after_delete")

Hook = Callable[..., None]


class HookRegistry:
    def __init__(self):
        self._hooks: Dict[Tuple[str, str], List[Hook]] = defaultdict(list)

    def register(self, entity_type: str, stage: str, hook: Hook) -> Hook:
        if stage not in STAGES:
            raise ValueError(f"Unknown hook stage: {stage}")
        self._hooks[(entity_type, stage)].append(hook)
        return hook

    def on(self, entity_type: str, stage: str):
        """Decorator form of register()."""
        def decorator(hook: Hook) -> Hook:
            return self.register(entity_type, stage, hook)
        return decorator

    def fire(self, entity_type: str, stage: str, uow, op: str, row, old=None):
        for hook in self._hooks.get((entity_type, stage), ()):
            hook(uow, op, row, old)

    def hooks_for(self, entity_type: str, stage: str) -> List[Hook]:
        return list(self._hooks.get((entity_type, stage), ()))


def default_registry() -> HookRegistry:
    """Registry wired with every hospital rule: billing, bed status, specialties, staffing, admissions."""
    from hms_backend.services import admissions, bed_status, billing, specialty_rule, staffing

    registry = HookRegistry()
    for module in (billing, bed_status, specialty_rule, staffing, admissions):
        module.register(registry)
        logger.debug(f"Registered hooks from {module.__name__}")
    return registry
