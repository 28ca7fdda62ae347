"""Front-end asset pipeline: Sass, HTML/JS copy, image optimisation, dev server."""

__version__ = "0.1.0"
