from .resolver import Stance, resolve_stance, resolve_stance_safely

__all__ = ["Stance", "resolve_stance", "resolve_stance_safely"]
