"""Exception hierarchy for tableturn."""


class TableturnError(Exception):
    """Base exception."""


class ConfigError(TableturnError):
    """Invalid configuration."""


class AuthError(TableturnError):
    """Record store credentials missing or rejected."""


class RecordStoreError(TableturnError):
    """Remote record store call failed."""


class ReservationNotFoundError(TableturnError):
    """No reservation with the given id in the book."""


class LifecycleError(TableturnError):
    """Transition not allowed from the current lifecycle state."""


class TimelineError(TableturnError):
    """Manual timeline edit not allowed for this reservation."""
