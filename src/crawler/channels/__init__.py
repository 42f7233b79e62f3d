"""Retrieval channels, one per backend."""

from .base import Channel
from .direct_browser import DirectBrowserChannel
from .remote_browser import RemoteBrowserChannel
from .rendering_proxy import RenderingProxyChannel
from .snapshot import SnapshotChannel
from .unblock_proxy import UnblockProxyChannel

__all__ = [
    "Channel",
    "DirectBrowserChannel",
    "RemoteBrowserChannel",
    "RenderingProxyChannel",
    "SnapshotChannel",
    "UnblockProxyChannel",
]
