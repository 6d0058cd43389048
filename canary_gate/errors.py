"""Error taxonomy for analysis submission and polling.

Every error carries a human-readable message. The provider turns any
AnalysisError into an Error-phase measurement instead of letting it escape
to the host.
"""


class AnalysisError(Exception):
    """Base class for every failure surfaced to the calling controller."""


# -- configuration -------------------------------------------------------------


class ConfigValidationError(AnalysisError):
    """The declarative analysis configuration is malformed."""


class SpecValidationError(ConfigValidationError):
    """Raised when an analysis spec fails loading or its basic checks."""


class ProfileValidationError(ConfigValidationError):
    """Raised when the run profile secret is missing a key or is malformed."""


class InvalidTimestamp(ConfigValidationError):
    """A start/end timestamp could not be parsed."""


class StartAfterEnd(ConfigValidationError):
    """canaryStartTime lies after endTime."""


class ServiceValidationError(ConfigValidationError):
    """A service entry's log/metric wiring is invalid."""


class DuplicateServiceName(ServiceValidationError):
    pass


class MissingScopePair(ServiceValidationError):
    pass


class MissingBaselineOrCanary(ServiceValidationError):
    pass


class ScopeCardinalityMismatch(ServiceValidationError):
    pass


class MissingTemplate(ServiceValidationError):
    pass


class NoLegsDefined(ServiceValidationError):
    pass


# -- template synchronization --------------------------------------------------


class TemplateSyncError(AnalysisError):
    """A template could not be loaded, canonicalized or registered remotely."""


class TemplateMapMissing(TemplateSyncError):
    pass


class TemplateNameMissing(TemplateSyncError):
    pass


class TemplateNameMismatch(TemplateSyncError):
    pass


class NoGroupsDefined(TemplateSyncError):
    pass


class TemplateCreateFailed(TemplateSyncError):
    pass


# -- remote service ------------------------------------------------------------


class TransportError(AnalysisError):
    """Network failure, timeout or unreadable response from the remote service."""


class RemoteRejectionError(AnalysisError):
    """The submission endpoint answered with an error payload."""


class ConfigStoreError(Exception):
    """Raised by a config store when a named object or namespace is absent."""
