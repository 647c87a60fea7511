"""探测器模块"""

from .base import BaseProbe, PROBE_SLACK
from .factory import ProbeFactory, probe_factory, register_probe
from .tcp_probe import TcpProbe
from .http_probe import HttpProbe
from .unit_probe import UnitProbe
from .process_probe import ProcessProbe
from .disk_probe import DiskProbe
from .pods_probe import PodsProbe

__all__ = ['BaseProbe', 'PROBE_SLACK', 'ProbeFactory', 'probe_factory',
           'register_probe', 'TcpProbe', 'HttpProbe', 'UnitProbe',
           'ProcessProbe', 'DiskProbe', 'PodsProbe']
