from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..op import OpCategory, OpContext, Operator
from ..params import ParamKind, ParamRecord


@dataclass
class MaterialOutput:
    base_color: tuple[float, float, float, float]
    roughness: float
    texture: Any = None
    layer: int | None = None


class MaterialStandard(Operator):
    """PBR material; the optional input texture is used as the base color map."""

    OPERATOR_CLASS = "material.standard"
    CATEGORY = OpCategory.material
    INPUTS = 1
    OUTPUTS = 1
    NEEDS_RENDER_LAYER = True

    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        return [
            ParamRecord(name="Base Color", kind=ParamKind.vec4, value=(1.0, 1.0, 1.0, 1.0), order=0, page="Material"),
            ParamRecord(name="Roughness", kind=ParamKind.f32, value=0.5, order=1, page="Material"),
        ]

    def should_execute(self, ctx: OpContext) -> bool:
        return True

    def execute(self, ctx: OpContext) -> None:
        self.set_output(
            0,
            MaterialOutput(
                base_color=tuple(self.params.get("Base Color")),
                roughness=float(self.params.get("Roughness")),
                texture=ctx.input(0),
                layer=self.render_layer,
            ),
        )
