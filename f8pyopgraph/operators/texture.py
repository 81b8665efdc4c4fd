from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from ..graph import EdgeDescriptor
from ..op import OpCategory, OpContext, Operator
from ..params import ParamKind, ParamRecord

logger = logging.getLogger(__name__)


@dataclass
class TextureOutput:
    """Render target published on a texture operator's out port."""

    layer: int | None
    image: np.ndarray
    generation: int = 0

    @property
    def resolution(self) -> tuple[int, int]:
        h, w = self.image.shape[:2]
        return int(w), int(h)


def new_image(width: int, height: int) -> np.ndarray:
    return np.zeros((int(height), int(width), 4), dtype=np.float32)


class TextureOperator(Operator):
    """
    Common behavior of texture operators.

    Each instance owns a private render layer and an RGBA float32 buffer sized by
    the `Resolution` parameter. The buffer is reallocated in `update()` when the
    resolution changes; the parameter hash change then re-runs `execute()`.
    """

    CATEGORY = OpCategory.texture
    OUTPUTS = 1
    NEEDS_RENDER_LAYER = True

    def spawn(self, ctx: OpContext) -> list[ParamRecord]:
        width, height = ctx.config.default_resolution
        self._output = TextureOutput(layer=self.render_layer, image=new_image(width, height))
        self.outputs[0] = self._output
        common = [
            ParamRecord(name="Resolution", kind=ParamKind.uvec2, value=(width, height), order=0, page="Common"),
        ]
        return [*common, *self.texture_params()]

    def texture_params(self) -> list[ParamRecord]:
        return []

    def update(self, ctx: OpContext) -> None:
        width, height = self.params.get("Resolution")
        if self._output.resolution != (width, height):
            logger.debug("[%s] resolution %s -> %s", self.name, self._output.resolution, (width, height))
            self._output = TextureOutput(layer=self.render_layer, image=new_image(width, height))
            self.outputs[0] = self._output

    def execute(self, ctx: OpContext) -> None:
        self.render(ctx, self._output.image)
        self._output.generation += 1

    def render(self, ctx: OpContext, image: np.ndarray) -> None:
        raise NotImplementedError

    def on_disconnect(self, ctx: OpContext, edge: EdgeDescriptor, fully_connected: bool) -> None:
        if not fully_connected:
            width, height = self._output.resolution
            self._output.image = new_image(width, height)


class TextureRamp(TextureOperator):
    """Linear blend between two colors, horizontal (Mode 0) or vertical (Mode 1)."""

    OPERATOR_CLASS = "texture.ramp"

    def texture_params(self) -> list[ParamRecord]:
        return [
            ParamRecord(name="Color A", kind=ParamKind.vec4, value=(1.0, 0.0, 0.0, 1.0), order=0, page="Ramp"),
            ParamRecord(name="Color B", kind=ParamKind.vec4, value=(0.0, 0.0, 1.0, 1.0), order=1, page="Ramp"),
            ParamRecord(name="Mode", kind=ParamKind.u32, value=0, order=2, page="Ramp"),
        ]

    def render(self, ctx: OpContext, image: np.ndarray) -> None:
        height, width = image.shape[:2]
        a = np.asarray(self.params.get("Color A"), dtype=np.float32)
        b = np.asarray(self.params.get("Color B"), dtype=np.float32)
        if int(self.params.get("Mode")) == 1:
            t = np.linspace(0.0, 1.0, height, dtype=np.float32)[:, None, None]
        else:
            t = np.linspace(0.0, 1.0, width, dtype=np.float32)[None, :, None]
        image[...] = a * (1.0 - t) + b * t


class TextureNoise(TextureOperator):
    """Seeded value noise scaled by `Strength`."""

    OPERATOR_CLASS = "texture.noise"

    def texture_params(self) -> list[ParamRecord]:
        return [
            ParamRecord(name="Strength", kind=ParamKind.f32, value=1.0, order=0, page="Noise"),
            ParamRecord(name="Seed", kind=ParamKind.u32, value=0, order=1, page="Noise"),
        ]

    def render(self, ctx: OpContext, image: np.ndarray) -> None:
        height, width = image.shape[:2]
        rng = np.random.default_rng(int(self.params.get("Seed")))
        strength = float(self.params.get("Strength"))
        value = np.clip(rng.random((height, width), dtype=np.float32) * strength, 0.0, 1.0)
        image[..., 0] = value
        image[..., 1] = value
        image[..., 2] = value
        image[..., 3] = 1.0


class TextureComposite(TextureOperator):
    """
    Combine two textures: add (Mode 0), multiply (Mode 1) or average (Mode 2).

    Renders black until both inputs are connected, then re-renders every tick.
    """

    OPERATOR_CLASS = "texture.composite"
    INPUTS = 2

    def texture_params(self) -> list[ParamRecord]:
        return [ParamRecord(name="Mode", kind=ParamKind.u32, value=0, order=0, page="Composite")]

    def should_execute(self, ctx: OpContext) -> bool:
        # Upstream buffers change without touching our params.
        return self.is_fully_connected()

    def render(self, ctx: OpContext, image: np.ndarray) -> None:
        if not self.is_fully_connected():
            image[...] = 0.0
            return
        a = ctx.input(0)
        b = ctx.input(1)
        if not isinstance(a, TextureOutput) or not isinstance(b, TextureOutput):
            image[...] = 0.0
            return
        height, width = image.shape[:2]
        src_a = _fit(a.image, width, height)
        src_b = _fit(b.image, width, height)
        mode = int(self.params.get("Mode"))
        if mode == 1:
            out = src_a * src_b
        elif mode == 2:
            out = (src_a + src_b) * 0.5
        else:
            out = src_a + src_b
        image[...] = np.clip(out, 0.0, 1.0)


def _fit(src: np.ndarray, width: int, height: int) -> np.ndarray:
    """Nearest-neighbour resample of `src` to (height, width)."""
    h, w = src.shape[:2]
    if h == 0 or w == 0:
        return new_image(width, height)
    if (h, w) == (height, width):
        return src
    ys = (np.arange(height) * h // height).astype(np.intp)
    xs = (np.arange(width) * w // width).astype(np.intp)
    return src[ys][:, xs]
