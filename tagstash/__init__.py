"""tagstash - tag-addressed image host."""

__version__ = "0.1.0"
