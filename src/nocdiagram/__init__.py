"""Public API for nocdiagram."""
from .diagram import EngineState, TopologyDiagram, UpdateResult, render_svg
from .errors import ConfigurationShapeError, ConnectionLookupError, NocDiagramError, TopologyMismatchError
from .settings import BaseConfiguration, Configuration, base_configuration_from_dict, configuration_from_dict
from .topology import Direction, Topology, topology_from_dict

__all__ = [
    "TopologyDiagram",
    "UpdateResult",
    "EngineState",
    "render_svg",
    "Topology",
    "Direction",
    "topology_from_dict",
    "Configuration",
    "BaseConfiguration",
    "configuration_from_dict",
    "base_configuration_from_dict",
    "NocDiagramError",
    "ConnectionLookupError",
    "TopologyMismatchError",
    "ConfigurationShapeError",
]
