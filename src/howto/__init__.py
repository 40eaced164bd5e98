"""HowTo - desktop companion for generative video and chat."""

__version__ = "0.1.0"
