"""ykube: kubeadm clusters on QingCloud instances."""
from ykube.cluster import ClusterCreationRequest
from ykube.cluster import ClusterEndpoint
from ykube.cluster import ClusterOrchestrator
from ykube.kubeadm import NetworkOption
from ykube.presets import default_catalog
from ykube.presets import Preset
from ykube.presets import PresetCatalog

__version__ = '0.1.0'

__all__ = [
    'ClusterCreationRequest',
    'ClusterEndpoint',
    'ClusterOrchestrator',
    'NetworkOption',
    'Preset',
    'PresetCatalog',
    'default_catalog',
]
