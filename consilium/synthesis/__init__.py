"""Plan synthesis."""

from consilium.synthesis.engine import SynthesisEngine

__all__ = ["SynthesisEngine"]
