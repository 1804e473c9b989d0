"""Errors raised by the evolution engine."""


class EvolutionError(Exception):
    """Base class for all errors reported by ca_evolution."""


class ConfigurationError(EvolutionError, ValueError):
    """Invalid run parameters, detected before any generation runs."""


class PersistenceError(EvolutionError):
    """A checkpoint could not be read or written."""


class IntegrityError(EvolutionError, ValueError):
    """Loaded or supplied data does not match the configured shape."""
