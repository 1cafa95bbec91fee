from .registry import RubricRegistry, get_rubric, registry

__all__ = ["RubricRegistry", "get_rubric", "registry"]
