"""signalminer: text-analytics pipeline for scraped reviews, posts and comments."""

__version__ = "0.1.0"
