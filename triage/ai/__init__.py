from .client import AIClient
from .drafter import ReplyDrafter
from .extractor import FieldExtractor

__all__ = ["AIClient", "FieldExtractor", "ReplyDrafter"]
