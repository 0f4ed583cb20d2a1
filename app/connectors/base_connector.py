"""
Base connector class for external carrier APIs
"""
from abc import ABC, abstractmethod
from typing import Any, Dict
from datetime import datetime


class BaseConnector(ABC):
    """Base class for all external API connectors"""

    def __init__(self, name: str):
        self.name = name
        self.last_call = None
        self.call_count = 0
        self.error_count = 0

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Validate connection is working"""
        pass

    def _record_call(self):
        self.last_call = datetime.utcnow()
        self.call_count += 1

    def _record_error(self):
        self.error_count += 1

    def get_status(self) -> Dict[str, Any]:
        """Get connector status"""
        return {
            "name": self.name,
            "last_call": self.last_call,
            "call_count": self.call_count,
            "error_count": self.error_count,
            "error_rate": self.error_count / max(self.call_count, 1),
        }
