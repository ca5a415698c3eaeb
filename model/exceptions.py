#!/usr/bin/env python3
"""
Custom exceptions for the nonparametric demand Monte Carlo.

Every error raised by the package derives from NPDemandError and carries an
optional ``details`` payload (usually a dict of offending shapes or
settings) that is kept separate from the human readable message, so the
logging layer can report the two at different levels.

Hierarchy:
    NPDemandError
        DataError
            DataValidationError
        ModelError
            SelectionError, EstimationError, ElasticityError
        ConfigurationError
        ExecutionError
            RunnerError
        ResultsError
"""
from typing import Any, Optional


class NPDemandError(Exception):
    """Base exception for the Monte Carlo package."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self):
        if not self.details:
            return self.message
        if isinstance(self.details, dict):
            described = ", ".join(f"{key}={value}" for key, value in self.details.items())
        else:
            described = str(self.details)
        return f"{self.message} ({described})"


class DataError(NPDemandError):
    """Simulated or supplied market data cannot be produced or used."""


class DataValidationError(DataError):
    """Market arrays disagree in shape, are non-finite or violate share bounds."""


class ModelError(NPDemandError):
    """Failure inside one of the estimation stages."""


class SelectionError(ModelError):
    """The lasso selector received inconsistent inputs or could not be fit."""


class EstimationError(ModelError):
    """The inverse demand system is under-identified or the constrained fit failed."""


class ElasticityError(ModelError):
    """The fitted system could not be inverted or its Jacobian is singular."""


class ConfigurationError(NPDemandError):
    """A setting is invalid and cannot be repaired."""


class ExecutionError(NPDemandError):
    """Failure while orchestrating the simulation runs."""


class RunnerError(ExecutionError):
    """A run produced unusable output, such as non-finite elasticities."""


class ResultsError(NPDemandError):
    """Saved results are missing, malformed or inconsistent with the price grid."""
