"""
Service layer enums
These enums are used by services and should match the values stored in the
database, but allow services to work without importing database models
"""

from enum import Enum


class OfferStatus(str, Enum):
    """Lifecycle status of an affiliate offer"""
    ACTIVE = 'ACTIVE'
    PAUSED = 'PAUSED'
    PENDING = 'PENDING'
    EXPIRED = 'EXPIRED'
    ARCHIVED = 'ARCHIVED'


class OfferCategory(str, Enum):
    """Vertical an offer belongs to"""
    FINANCE = 'FINANCE'
    INSURANCE = 'INSURANCE'
    HEALTH = 'HEALTH'
    EDUCATION = 'EDUCATION'
    TECHNOLOGY = 'TECHNOLOGY'
    TRAVEL = 'TRAVEL'
    SHOPPING = 'SHOPPING'
    OTHER = 'OTHER'


class ClickStatus(str, Enum):
    """Classification assigned to a click when it is recorded"""
    VALID = 'VALID'
    PENDING = 'PENDING'
    FILTERED = 'FILTERED'
    DUPLICATE = 'DUPLICATE'
    FRAUD = 'FRAUD'


class DeviceType(str, Enum):
    """Device class derived from the user agent"""
    DESKTOP = 'DESKTOP'
    MOBILE = 'MOBILE'
    TABLET = 'TABLET'


class ResponseStatus(str, Enum):
    """Status of a respondent's survey session"""
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    ABANDONED = 'ABANDONED'
    TIMEOUT = 'TIMEOUT'


class QuestionStatus(str, Enum):
    """Publication status of a survey question"""
    DRAFT = 'DRAFT'
    ACTIVE = 'ACTIVE'
    ARCHIVED = 'ARCHIVED'


class TimeRange(str, Enum):
    """Dashboard reporting windows"""
    LAST_24H = 'last24h'
    LAST_7D = 'last7d'
    LAST_30D = 'last30d'
    
    @property
    def days(self) -> int:
        return {'last24h': 1, 'last7d': 7, 'last30d': 30}[self.value]
    
    @property
    def label(self) -> str:
        return {'last24h': 'today', 'last7d': 'last7days', 'last30d': 'last30days'}[self.value]
