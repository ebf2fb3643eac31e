__version__ = "v0.3.0"


__all__ = [
    "__version__",
    "capture",
    "cli",
    "config",
    "constants",
    "engine",
    "gateway",
    "models",
]

from . import constants
from . import models
from . import config
from . import engine
from . import gateway
from . import capture
from . import cli
