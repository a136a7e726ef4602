from .math_tools import MathTools, DAY_MS

__all__ = ["MathTools", "DAY_MS"]
