"""
panerelay — remote control and live mirroring for interactive CLI coding assistants.

panerelay runs each assistant instance inside a terminal multiplexer session,
samples the pane on a timer, and turns the decorated terminal text into clean
events for remote viewers. Independently it reconciles the assistant's
tool/message event feed (history replay plus live deltas) into one ordered,
deduplicated conversation model.

Package layout (src/panerelay/):
  core/capture/       — OutputFilter, OutputDiffer
  core/session/       — TerminalSession, SessionRegistry
  core/tracking/      — ToolTracker (tool and agent ledger)
  core/conversation/  — CanonicalMessage, shape parsers, EventReconciler
  core/coordinator.py — SessionCoordinator (composition root)
  os/multiplexer/     — multiplexer control surface (tmux)
  cli/                — Click CLI entry point
"""

__version__ = "0.4.0"
__all__ = ["__version__"]
