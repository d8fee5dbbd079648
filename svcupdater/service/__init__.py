"""OS service control for svcupdater.

Modules:

base : module
    ServiceController protocol, ServiceInfo, controller registry and
    command-line helpers.
windows : module
    sc.exe-backed controller, registered as "sc".

Public API:

ServiceController : protocol
ServiceInfo : dataclass
available_controllers : function
    Names of registered controllers.
get_controller : function
    Instantiate a registered controller by name.
register_controller : function
    Register a controller class by name.
executable_from_command_line : function
    Extract the executable path from a service invocation string.

"""

# Import controller modules to trigger self-registration
from . import windows  # noqa: F401
from .base import (
    ServiceController,
    ServiceInfo,
    available_controllers,
    executable_from_command_line,
    get_controller,
    register_controller,
    same_executable,
    split_command_line,
)

__all__ = [
    "ServiceController",
    "ServiceInfo",
    "available_controllers",
    "executable_from_command_line",
    "get_controller",
    "register_controller",
    "same_executable",
    "split_command_line",
]
