"""cloudbake - Build reusable CloudStack templates from disposable virtual machines."""

from .artifact import Artifact as Artifact
from .builder import Builder as Builder
from .builder import CloudStackBuilder as CloudStackBuilder
from .builder import builder as builder
from .client import CloudStackClient as CloudStackClient
from .config import CloudStackConfig as CloudStackConfig
from .context import Context as Context
from .errors import BuildError as BuildError
from .host import Host as Host
from .host import LoggingUi as LoggingUi
from .runner import Runner as Runner
from .step import Step as Step
from .step import StepAction as StepAction
from .workspace import Workspace as Workspace
