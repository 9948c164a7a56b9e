from .engine import build_title_prompt, generate_project_title

__all__ = ["build_title_prompt", "generate_project_title"]
