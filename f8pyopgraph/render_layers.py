from __future__ import annotations

import logging
from collections.abc import Iterable

from .errors import ResourceExhausted

logger = logging.getLogger(__name__)

LayerId = int


class RenderLayerManager:
    """
    Bounded pool of exclusive render layer tokens.

    The slot vector only records claims seen since the last `sync()`. Liveness is
    re-derived from the set of live claims on every sync, so a layer whose owner
    is gone is reusable on the very next allocation without an explicit release.
    """

    def __init__(self, *, ceiling: int = 32) -> None:
        if int(ceiling) <= 0:
            raise ValueError("ceiling must be > 0")
        self._ceiling = int(ceiling)
        self._layers: list[bool] = []

    @property
    def ceiling(self) -> int:
        return self._ceiling

    def __len__(self) -> int:
        return len(self._layers)

    def is_claimed(self, layer: LayerId) -> bool:
        layer = int(layer)
        return 0 <= layer < len(self._layers) and self._layers[layer]

    def claimed(self) -> list[LayerId]:
        return [i for i, used in enumerate(self._layers) if used]

    def add(self, layer: LayerId) -> None:
        layer = int(layer)
        if layer < 0 or layer >= self._ceiling:
            raise ValueError(f"layer {layer} outside pool [0, {self._ceiling})")
        while len(self._layers) <= layer:
            self._layers.append(False)
        self._layers[layer] = True

    def clear(self) -> None:
        for i in range(len(self._layers)):
            self._layers[i] = False

    def next_open_layer(self) -> LayerId:
        for i, used in enumerate(self._layers):
            if not used:
                self._layers[i] = True
                return i
        if len(self._layers) >= self._ceiling:
            raise ResourceExhausted(self._ceiling)
        self._layers.append(True)
        return len(self._layers) - 1

    def sync(self, live_claims: Iterable[LayerId | None]) -> None:
        """
        Rebuild the slot vector from the layers currently claimed by live owners.
        """
        self.clear()
        for layer in live_claims:
            if layer is None:
                continue
            if self.is_claimed(layer):
                logger.warning("render layer %s claimed by more than one owner", layer)
            self.add(layer)
