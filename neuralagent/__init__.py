"""NeuralAgent desktop session and entitlement layer."""

__version__ = "1.0.0"
