"""Terminal multiplexer backends."""

from panerelay.os.multiplexer.base import BaseMultiplexer
from panerelay.os.multiplexer.tmux import TmuxMultiplexer

__all__ = ["BaseMultiplexer", "TmuxMultiplexer"]
