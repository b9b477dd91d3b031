from .database import Database
from .models import BattleSnapshot, Boss, BossStyle, EngineState, SessionResult
from .repository import Repository

__all__ = ["Database", "BattleSnapshot", "Boss", "BossStyle", "EngineState", "SessionResult", "Repository"]
