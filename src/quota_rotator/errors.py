"""Exception hierarchy for quota evaluation and key rotation."""


class QuotaRotatorError(Exception):
    """Base class for all errors raised by quota_rotator."""


class ConfigurationError(QuotaRotatorError):
    """A window name was referenced that the keyspace does not know."""


class NotFoundError(QuotaRotatorError):
    """A referenced API or model is not present in the registry."""


class ValidationError(QuotaRotatorError):
    """A supplied value (limit, strategy name, duration) is malformed."""
