"""Client side of queuewarden.

- **options**: resolved launcher configuration
- **environment**: ``.queuewarden`` marker file
- **archive**: configuration directory -> payload ConfigMap
- **monitors**: concurrent watchers deciding when the pod can be used
- **attach**: handshake, terminal relay and log streaming
- **exit**: exit code relay
- **launcher**: the end-to-end ``Launcher.run``
"""

from queuewarden.launcher.launcher import Launcher
from queuewarden.launcher.options import LauncherOptions

__all__ = ["Launcher", "LauncherOptions"]
