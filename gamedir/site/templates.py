"""Jinja2 templates and static assets for the generated site."""

from __future__ import annotations

import base64
from functools import lru_cache

from jinja2 import DictLoader, Environment, select_autoescape

_INDEX_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ site.title }}</title>
    <link rel="stylesheet" href="/static/style.css">
</head>
<body>
    <header>
        <h1>{{ site.title }}</h1>
    </header>
    <main>
        <div class="game-grid">
{% for game in games %}
            <div class="game-card">
                <a href="/{{ game.name | urlencode }}/">
                    <div class="game-thumb">
                        <img src="{{ game.thumbnail }}" alt="{{ game.name }}">
                    </div>
                    <div class="game-info">
                        <h2>{{ game.name }}</h2>
                        <p>{{ game.description }}</p>
{% if game.tags %}
                        <div class="tags">
{% for tag in game.tags %}
                            <span class="tag">{{ tag }}</span>
{% endfor %}
                        </div>
{% endif %}
                    </div>
                </a>
                <a href="/{{ game.name | urlencode }}/info/" class="info-link">Info</a>
            </div>
{% else %}
            <p class="empty">No games have been published yet.</p>
{% endfor %}
        </div>
    </main>
{% if site.footer %}
    <footer>
        <p>{{ site.footer }}</p>
    </footer>
{% endif %}
</body>
</html>
"""

_INFO_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{{ game.name }} - Info</title>
    <link rel="stylesheet" href="/static/style.css">
</head>
<body>
    <header>
        <nav>
            <a href="/">Home</a>
            <a href="/{{ game.name | urlencode }}/">Play</a>
        </nav>
    </header>
    <main class="info-container">
        <h1>{{ game.name }}</h1>
        <p class="description">{{ game.description }}</p>
        <div class="tags">
{% for tag in game.tags %}
            <span class="tag">{{ tag }}</span>
{% endfor %}
        </div>
    </main>
</body>
</html>
"""

STYLESHEET = """\
* {
    box-sizing: border-box;
    margin: 0;
    padding: 0;
}

body {
    font-family: Arial, sans-serif;
    line-height: 1.6;
    max-width: 1200px;
    margin: 0 auto;
    padding: 20px;
}

header {
    margin-bottom: 20px;
}

nav {
    display: flex;
    gap: 20px;
}

.game-grid {
    display: grid;
    grid-template-columns: repeat(auto-fill, minmax(250px, 1fr));
    gap: 20px;
}

.game-card {
    border: 1px solid #ddd;
    border-radius: 5px;
    overflow: hidden;
    transition: transform 0.3s ease;
}

.game-card:hover {
    transform: translateY(-5px);
}

.game-thumb img {
    width: 100%;
    height: 150px;
    object-fit: cover;
}

.game-info {
    padding: 15px;
}

.tag {
    display: inline-block;
    background: #eef;
    border-radius: 3px;
    padding: 0 6px;
    margin-right: 4px;
    font-size: 0.85em;
}

.info-link {
    display: block;
    text-align: center;
    background: #f0f0f0;
    padding: 5px;
    text-decoration: none;
    color: #333;
}

footer {
    margin-top: 40px;
    text-align: center;
    color: #666;
}
"""

# 1x1 transparent PNG used until a real thumbnail exists.
DEFAULT_THUMBNAIL = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

INDEX_TEMPLATE = "index.html"
INFO_TEMPLATE = "info.html"


@lru_cache(maxsize=1)
def environment() -> Environment:
    """Return the shared Jinja2 environment (templates are immutable)."""
    return Environment(
        loader=DictLoader({INDEX_TEMPLATE: _INDEX_TEMPLATE, INFO_TEMPLATE: _INFO_TEMPLATE}),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


__all__ = [
    "DEFAULT_THUMBNAIL",
    "INDEX_TEMPLATE",
    "INFO_TEMPLATE",
    "STYLESHEET",
    "environment",
]
