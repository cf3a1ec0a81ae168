"""
Exception hierarchy for the template selection and experimentation engine.
"""


class TemplateEngineError(Exception):
    """Base class for errors raised by leadtemplates."""


class TemplateValidationError(TemplateEngineError, ValueError):
    """A template, condition or variation change is structurally invalid."""


class UnknownTestError(TemplateEngineError, KeyError):
    """An experiment id was used that the engine never registered."""
