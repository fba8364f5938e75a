from .sprite import SpriteEnvironment

__all__ = ["SpriteEnvironment"]
