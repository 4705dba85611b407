"""Errors shared across the routing core."""


class ConfigurationError(Exception):
    """Invalid team/funnel configuration. Fatal at load time."""

    pass


class TransientStoreError(Exception):
    """Contended or timed-out store write, surfaced after bounded retries."""

    retryable = True
