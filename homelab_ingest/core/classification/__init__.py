from .classifier import classify

__all__ = ["classify"]
