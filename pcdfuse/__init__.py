"""LiDAR point cloud to camera detection fusion."""

__version__ = "0.1.0"
__author__ = "Nagarjunan"

from . import errors
from . import utils
from . import sensors
from . import calibration
from . import fusion
from . import viz
