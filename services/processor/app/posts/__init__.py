from .engine import generate_posts

__all__ = ["generate_posts"]
