from importlib.metadata import PackageNotFoundError, version

from .config import Config, SuiteConfig, load_suite_config
from .diagnostics import FailureHookRegistry, FailureRecord
from .dot_dict import DotDict
from .exceptions import (
    CleanupFailure,
    CodecError,
    ConfigError,
    DiagnosticHandlerError,
    HarnessError,
    PhaseError,
    RegistryFrozenError,
    ResourceOperationFailure,
    SetupFailure,
    TeardownFailure,
    TimeoutFailure,
)
from .regex_utils import RegexComplexityError, safe_compile
from .resources import ResourceKind, ResourceLifecycleManager, TrackedResource
from .state import SharedSuiteState
from .suite import RunReport, SuiteCoordinator, TestCase
from .tracing import CorrelationContext, CorrelationTracer

# Version is read from package metadata (pyproject.toml)
try:
    __version__ = version("e2einfra")
except PackageNotFoundError:
    # Package not installed, use fallback (development mode)
    __version__ = "0.1.0-dev"

# Explicit public API
__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "DotDict",
    "SuiteConfig",
    "load_suite_config",
    # Suite
    "SuiteCoordinator",
    "SharedSuiteState",
    "TestCase",
    "RunReport",
    # Resources
    "ResourceKind",
    "TrackedResource",
    "ResourceLifecycleManager",
    # Tracing
    "CorrelationContext",
    "CorrelationTracer",
    # Diagnostics
    "FailureHookRegistry",
    "FailureRecord",
    # Exceptions
    "HarnessError",
    "ConfigError",
    "SetupFailure",
    "ResourceOperationFailure",
    "TimeoutFailure",
    "CleanupFailure",
    "TeardownFailure",
    "DiagnosticHandlerError",
    "RegistryFrozenError",
    "CodecError",
    "PhaseError",
    # Regex utilities (ReDoS protection)
    "safe_compile",
    "RegexComplexityError",
]
