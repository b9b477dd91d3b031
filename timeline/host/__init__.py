from .battle_clock import BattleClock

__all__ = ["BattleClock"]
