from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..op import OpCategory, OpContext, Operator
from ..params import ParamKind, ParamRecord


@dataclass
class MeshOutput:
    positions: np.ndarray
    indices: np.ndarray
    translation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    layer: int | None = None


class MeshPlane(Operator):
    """Axis-aligned quad in the XZ plane, previewed on its own layer."""

    OPERATOR_CLASS = "mesh.plane"
    CATEGORY = OpCategory.mesh
    OUTPUTS = 1
    NEEDS_RENDER_LAYER = True

    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        return [
            ParamRecord(name="Size", kind=ParamKind.vec2, value=(1.0, 1.0), order=0, page="Plane"),
            ParamRecord(name="Translation", kind=ParamKind.vec3, value=(0.0, 0.0, 0.0), order=1, page="Transform"),
        ]

    def should_execute(self, ctx: OpContext) -> bool:
        return True

    def execute(self, ctx: OpContext) -> None:
        sx, sz = self.params.get("Size")
        hx, hz = sx * 0.5, sz * 0.5
        positions = np.array(
            [[-hx, 0.0, -hz], [hx, 0.0, -hz], [hx, 0.0, hz], [-hx, 0.0, hz]],
            dtype=np.float32,
        )
        indices = np.array([0, 2, 1, 0, 3, 2], dtype=np.uint32)
        translation = tuple(self.params.get("Translation"))
        mesh = MeshOutput(positions=positions, indices=indices, translation=translation, layer=self.render_layer)
        self.set_output(0, mesh)
