"""dappforge: cross-compile third-party sources into an installable app package.

Fetches pinned source archives, builds them in dependency order against a
cross-compilation toolchain, and bundles the installed tree into a
``<name>.tgz`` for the target appliance.
"""

__version__ = "0.1.0"
__description__ = "Cross-compilation build orchestrator for appliance app packages"

from dappforge.core.orchestrator import Orchestrator
from dappforge.config import BuildSettings

__all__ = ["Orchestrator", "BuildSettings", "__version__"]
