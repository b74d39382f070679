"""Static page generation for the public tree."""

from .index import IndexGenerator, published_games, render_info_page

__all__ = ["IndexGenerator", "published_games", "render_info_page"]
