"""Exception types raised by the exporter."""


class RegistryError(Exception):
    """Base class for metric registry misuse."""


class DuplicateFamilyError(RegistryError):
    """A metric family with the same name was already declared."""

    def __init__(self, name: str):
        super().__init__(f"Metric family '{name}' is already declared")
        self.name = name


class UnknownFamilyError(RegistryError):
    """A write or read referenced a family that was never declared."""

    def __init__(self, name: str):
        super().__init__(f"Metric family '{name}' is not declared")
        self.name = name


class LabelMismatchError(RegistryError):
    """Label values do not match the family's label names."""


class InvalidDeltaError(RegistryError):
    """A counter increment with a negative or NaN delta."""


class MetricKindError(RegistryError):
    """An operation was applied to a family of the wrong kind."""


class FeedReadError(Exception):
    """A job event could not be read from the feed."""


class ListenError(Exception):
    """The HTTP endpoint could not bind its port."""

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"Cannot listen on {host}:{port}: {reason}")
        self.host = host
        self.port = port
