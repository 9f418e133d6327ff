"""Gating domain exceptions (raised by service, caught by controller)."""


class FlagNotFound(Exception):
    def __init__(self, flag_id: object) -> None:
        super().__init__(f"Feature flag {flag_id} not found.")


class ABTestNotFound(Exception):
    def __init__(self, test_id: object) -> None:
        super().__init__(f"A/B test {test_id} not found.")


class DuplicateName(Exception):
    """A flag or test with this name already exists."""


class ABTestTransitionError(Exception):
    """Invalid status transition (e.g. resuming a COMPLETED test)."""


class AllocationError(Exception):
    """control/variant percentages do not sum to 100."""
