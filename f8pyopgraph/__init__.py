"""
Operator dataflow graph engine.

Star-imports are avoided; the names below are the public surface.
"""

from .config import EngineConfig
from .connections import ConnectRequest, DisconnectRequest, parse_request
from .engine import OpGraphEngine, TickReport, default_registry
from .errors import (
    CycleError,
    DanglingReference,
    DuplicateOperatorName,
    OpGraphError,
    ParamConversionError,
    PortOutOfRange,
    ResourceExhausted,
    WouldCreateCycle,
)
from .graph import EdgeDescriptor, NodeHandle, NodeRegistry
from .op import OpCategory, OpContext, OpInputs, Operator, OperatorLifecycle, OperatorLike
from .params import ParamKind, ParamRecord, ParamSet, ParamWriteOrigin
from .registry import OperatorAlreadyRegistered, OperatorNotRegistered, OperatorRegistry, RegistryError
from .render_layers import RenderLayerManager

__all__ = [
    "ConnectRequest",
    "CycleError",
    "DanglingReference",
    "DisconnectRequest",
    "DuplicateOperatorName",
    "EdgeDescriptor",
    "EngineConfig",
    "NodeHandle",
    "NodeRegistry",
    "OpCategory",
    "OpContext",
    "OpGraphEngine",
    "OpGraphError",
    "OpInputs",
    "Operator",
    "OperatorAlreadyRegistered",
    "OperatorLifecycle",
    "OperatorLike",
    "OperatorNotRegistered",
    "OperatorRegistry",
    "ParamConversionError",
    "ParamKind",
    "ParamRecord",
    "ParamSet",
    "ParamWriteOrigin",
    "PortOutOfRange",
    "RegistryError",
    "RenderLayerManager",
    "ResourceExhausted",
    "TickReport",
    "WouldCreateCycle",
    "default_registry",
    "parse_request",
]
