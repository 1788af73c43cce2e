"""Per-sample compositing of noise, ripples and palette."""

from chromafield.render.compositor import CompositorConfig, compose, compose_field

__all__ = ["CompositorConfig", "compose", "compose_field"]
