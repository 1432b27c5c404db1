# Detection Module
from .bot import BotDetector
from .user_agent import ClientInfo, parse_client

__all__ = ["BotDetector", "ClientInfo", "parse_client"]
