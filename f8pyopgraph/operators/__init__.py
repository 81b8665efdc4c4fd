from __future__ import annotations

from ..registry import OperatorRegistry
from .component import ComponentCamera, ComponentGeom, ComponentLight, ComponentWindow
from .material import MaterialStandard
from .mesh import MeshPlane
from .texture import TextureComposite, TextureNoise, TextureRamp

BUILTIN_OPERATORS = (
    TextureRamp,
    TextureNoise,
    TextureComposite,
    MeshPlane,
    MaterialStandard,
    ComponentCamera,
    ComponentLight,
    ComponentGeom,
    ComponentWindow,
)


def register_builtin_operators(registry: OperatorRegistry | None = None) -> OperatorRegistry:
    """
    Register the builtin operator set.
    """
    reg = registry or OperatorRegistry.instance()
    for op_type in BUILTIN_OPERATORS:
        reg.register_type(op_type, overwrite=True)
    return reg


def register_operators(registry: OperatorRegistry) -> None:
    """Plugin hook used by `OperatorRegistry.load_modules`."""
    register_builtin_operators(registry)
