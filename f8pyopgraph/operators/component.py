from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..graph import EdgeDescriptor
from ..op import OpCategory, OpContext, Operator
from ..params import ParamKind, ParamRecord

logger = logging.getLogger(__name__)


@dataclass
class SceneEntity:
    """What a component operator has placed in the scene on its last execute."""

    kind: str
    layer: int | None = None
    props: dict[str, Any] = field(default_factory=dict)


class ComponentOperator(Operator):
    CATEGORY = OpCategory.component

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.entity: SceneEntity | None = None


class ComponentCamera(ComponentOperator):
    """Camera rendering into the operator's own layer."""

    OPERATOR_CLASS = "component.camera"
    NEEDS_RENDER_LAYER = True

    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        return [
            ParamRecord(name="Translation", kind=ParamKind.vec3, value=(0.0, 0.0, 5.0), order=0, page="Transform"),
            ParamRecord(name="Look At", kind=ParamKind.vec3, value=(0.0, 0.0, 0.0), order=1, page="Transform"),
        ]

    def should_execute(self, ctx: OpContext) -> bool:
        return True

    def execute(self, ctx: OpContext) -> None:
        self.entity = SceneEntity(
            kind="camera",
            layer=self.render_layer,
            props={"translation": self.params.get("Translation"), "look_at": self.params.get("Look At")},
        )


class ComponentLight(ComponentOperator):
    OPERATOR_CLASS = "component.light"
    NEEDS_RENDER_LAYER = True

    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        return [
            ParamRecord(name="Intensity", kind=ParamKind.f32, value=1000.0, order=0, page="Light"),
            ParamRecord(name="Translation", kind=ParamKind.vec3, value=(4.0, 8.0, 4.0), order=1, page="Transform"),
        ]

    def should_execute(self, ctx: OpContext) -> bool:
        return True

    def execute(self, ctx: OpContext) -> None:
        self.entity = SceneEntity(
            kind="light",
            layer=self.render_layer,
            props={"intensity": self.params.get("Intensity"), "translation": self.params.get("Translation")},
        )


class ComponentGeom(ComponentOperator):
    """
    Scene geometry fed by a mesh. Re-executes only on parameter changes or a
    new input connection; the entity is removed when the input goes away.
    """

    OPERATOR_CLASS = "component.geom"
    INPUTS = 1
    NEEDS_RENDER_LAYER = True

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._rewired = False

    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        return [
            ParamRecord(name="Translation", kind=ParamKind.vec3, value=(0.0, 0.0, 0.0), order=0, page="Transform"),
        ]

    def should_execute(self, ctx: OpContext) -> bool:
        rewired, self._rewired = self._rewired, False
        return rewired

    def on_connect(self, ctx: OpContext, edge: EdgeDescriptor, fully_connected: bool) -> None:
        self._rewired = True

    def on_disconnect(self, ctx: OpContext, edge: EdgeDescriptor, fully_connected: bool) -> None:
        if not fully_connected:
            logger.debug("[%s] input removed, dropping entity", self.name)
            self.entity = None

    def execute(self, ctx: OpContext) -> None:
        mesh = ctx.input(0)
        if mesh is None:
            self.entity = None
            return
        self.entity = SceneEntity(
            kind="geom",
            layer=self.render_layer,
            props={"mesh": mesh, "translation": self.params.get("Translation")},
        )


class ComponentWindow(ComponentOperator):
    """Presents the input texture in a window while `Open` is set."""

    OPERATOR_CLASS = "component.window"
    INPUTS = 1
    NEEDS_RENDER_LAYER = True

    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        return [
            ParamRecord(name="Texture", kind=ParamKind.text, value="", order=0, page="Window"),
            ParamRecord(name="Open", kind=ParamKind.boolean, value=False, order=1, page="Window"),
        ]

    def should_execute(self, ctx: OpContext) -> bool:
        return True

    def execute(self, ctx: OpContext) -> None:
        if not self.params.get("Open"):
            if self.entity is not None:
                logger.debug("[%s] window closed", self.name)
            self.entity = None
            return
        source = ctx.input(0)
        self.entity = SceneEntity(
            kind="window",
            layer=self.render_layer,
            props={
                "title": self.params.get("Texture") or self.name,
                "texture": source,
                "source_layer": getattr(source, "layer", None),
            },
        )
