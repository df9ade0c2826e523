"""Error taxonomy for rule evaluation and action execution."""


class AutomationError(Exception):
    """Base class for automation engine errors."""


class ConfigurationError(AutomationError):
    """A rule definition is malformed. Raised when a rule is saved or parsed."""


class ResolutionError(AutomationError):
    """An action references an id that is not in the directory snapshot."""


class UnknownTargetError(ResolutionError):
    """User or team id did not resolve."""


class UnknownListError(ResolutionError):
    """Phone list id did not resolve."""


class EmptyTeamError(AutomationError):
    """Round-robin assignment requested for a team with no eligible members."""


class DispatchError(AutomationError):
    """Outbound delivery (webhook, transport) failed."""
