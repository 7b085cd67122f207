"""Round orchestration against the game program."""

from coinflip_referee.game.orchestrator import GameOrchestrator

__all__ = ["GameOrchestrator"]
