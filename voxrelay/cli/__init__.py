"""voxrelay command line.

Registers all commands on the main group.
"""

from voxrelay.cli.main import cli
from voxrelay.cli.probe import probe
from voxrelay.cli.serve import serve

__all__ = [
    "cli",
    "probe",
    "serve",
]
