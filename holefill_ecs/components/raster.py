"""Raster components: depth, colour, gradient and composite rasters.

Every raster component stores a single TensorRef named ``data`` pointing
into the World's arena. Single-channel rasters are (rows, cols); the
others are (rows, cols, channels), float32.
"""

from pydantic import BaseModel

from holefill_ecs.core.arena import TensorRef

# Channel layout of the 5-channel RGBDxDy composite
RGB_CHANNELS: tuple[int, ...] = (0, 1, 2)
GRADIENT_CHANNELS: tuple[int, ...] = (3, 4)
RGBDXDY_CHANNELS = len(RGB_CHANNELS) + len(GRADIENT_CHANNELS)


class Component(BaseModel):
    """Base class for all ECS components.

    Components are data containers using Pydantic for validation and type safety.
    """

    model_config = {"arbitrary_types_allowed": True}


class Raster(Component):
    """Base class for raster components.

    Attributes:
        data: TensorRef to the raster samples
    """

    data: TensorRef


class DepthImage(Raster):
    """Range along each cell's viewing ray, (rows, cols)."""


class DepthGradient(Raster):
    """Masked depth gradient (d/dx, d/dy), (rows, cols, 2).

    Attributes:
        convention: Name of the difference convention that produced it
    """

    convention: str = "forward"


class RGBImage(Raster):
    """Cloud colours as float32 in 0..255, (rows, cols, 3)."""


class RGBDImage(Raster):
    """Colour plus depth, (rows, cols, 4)."""


class FilledRGBD(Raster):
    """RGBD raster after small-hole pre-fill, (rows, cols, 4)."""


class RGBDxDy(Raster):
    """Colour plus depth gradient composite to inpaint, (rows, cols, 5)."""


class FilledRGBDxDy(Raster):
    """RGBDxDy composite with the hole filled, (rows, cols, 5)."""


class InpaintedRGB(Raster):
    """Colour channels extracted from the filled composite, (rows, cols, 3)."""


class InpaintedGradient(Raster):
    """Gradient channels extracted from the filled composite, (rows, cols, 2)."""


class ReconstructedDepth(Raster):
    """Depth integrated from the filled gradient, (rows, cols)."""
