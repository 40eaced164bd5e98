"""Provider clients for HowTo."""

from .base import ChatClient, ServiceClient, join_url
from .cloud_chat import CloudChatClient
from .local_chat import LocalChatClient
from .video import VideoGenerationClient

__all__ = [
    "ServiceClient",
    "ChatClient",
    "join_url",
    # Video generation
    "VideoGenerationClient",
    # Chat providers
    "CloudChatClient",
    "LocalChatClient",
]
