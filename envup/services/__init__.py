"""Provisioning services: executor, pipeline steps and their components."""

from .catalog import LaunchMechanism, LaunchSpec, RegistryEntry, default_catalog, render_launch
from .executor import (
    ActionOutcome,
    Outcome,
    ProvisioningStep,
    RunReport,
    StepError,
    StepExecutor,
)
from .project_config import purge, repair_merge
from .provision import ProvisionResult, ProvisionService
from .registration import RegistrationManager, RegistrationReport, RegistryClient
from .scrubber import AliasMatcher, ConfigScrubber
from .status import StatusReporter
from .steps import PipelineSteps, ProvisionContext
from .version_resolver import VersionPreference, VersionResolver

__all__ = [
    # catalog
    "LaunchMechanism",
    "LaunchSpec",
    "RegistryEntry",
    "default_catalog",
    "render_launch",
    # executor
    "ActionOutcome",
    "Outcome",
    "ProvisioningStep",
    "RunReport",
    "StepError",
    "StepExecutor",
    # project config
    "purge",
    "repair_merge",
    # pipeline
    "PipelineSteps",
    "ProvisionContext",
    "ProvisionResult",
    "ProvisionService",
    # registration
    "RegistrationManager",
    "RegistrationReport",
    "RegistryClient",
    # components
    "AliasMatcher",
    "ConfigScrubber",
    "StatusReporter",
    "VersionPreference",
    "VersionResolver",
]
