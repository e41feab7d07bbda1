"""
Request Context
Immutable inputs shared by every stage of one pipeline run

Role and language are closed enumerations. Anything outside them is
rejected when the context is built, never deep inside a stage.
"""
import copy
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


class InvalidContextError(ValueError):
    """Raised when a request carries an unknown role, language or message"""


class UserRole(str, Enum):
    """Audience tiers the assistant tailors its answers to"""
    TOP_MANAGEMENT = 'top_management'
    MIDDLE_MANAGEMENT = 'middle_management'
    FRONTLINE_OPERATIONS = 'frontline_operations'

    @classmethod
    def parse(cls, value: Any) -> 'UserRole':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace('-', '_').replace(' ', '_')
            for member in cls:
                if member.value == normalized:
                    return member
        raise InvalidContextError(
            f"Unknown user role: {value!r} (expected one of {[m.value for m in cls]})"
        )


_LANGUAGE_NAMES = {
    'en': ('English', 'English'),
    'zh-CN': ('Simplified Chinese', '简体中文'),
    'es': ('Spanish', 'Español'),
    'ar': ('Arabic', 'العربية'),
    'fr': ('French', 'Français'),
    'hi': ('Hindi', 'हिन्दी'),
}

# Display names that clients send instead of codes
_LANGUAGE_ALIASES = {
    'english': 'en',
    'simplified chinese': 'zh-CN',
    'chinese': 'zh-CN',
    'zh': 'zh-CN',
    'spanish': 'es',
    'arabic': 'ar',
    'french': 'fr',
    'hindi': 'hi',
}


class Language(str, Enum):
    """Supported response languages, keyed by code"""
    EN = 'en'
    ZH_CN = 'zh-CN'
    ES = 'es'
    AR = 'ar'
    FR = 'fr'
    HI = 'hi'

    @property
    def display_name(self) -> str:
        return _LANGUAGE_NAMES[self.value][0]

    @property
    def native_name(self) -> str:
        return _LANGUAGE_NAMES[self.value][1]

    @property
    def direction(self) -> str:
        return 'rtl' if self is Language.AR else 'ltr'

    @classmethod
    def parse(cls, value: Any) -> 'Language':
        """Accept a language code (any case) or its English name"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
            if lowered in _LANGUAGE_ALIASES:
                return cls(_LANGUAGE_ALIASES[lowered])
        raise InvalidContextError(
            f"Unsupported language: {value!r} (expected one of {[m.value for m in cls]})"
        )


@dataclass(frozen=True)
class Message:
    """One prior conversation turn"""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {'role': self.role, 'content': self.content}


MESSAGE_ROLES = ('system', 'user', 'assistant', 'function')


@dataclass(frozen=True)
class AgentContext:
    """
    Everything a stage needs to answer one question

    Built once per request. The dashboard snapshot is a private deep copy
    and the history is a tuple, so stages can read but never change what
    the caller passed in.
    """
    user_query: str
    language: Language
    user_role: UserRole
    dashboard_data: Optional[Dict[str, Any]] = None
    conversation_history: Tuple[Message, ...] = field(default_factory=tuple)
    screenshot_url: Optional[str] = None

    @classmethod
    def build(
        cls,
        user_query: str,
        language: Any = Language.EN,
        user_role: Any = UserRole.MIDDLE_MANAGEMENT,
        dashboard_data: Optional[Dict[str, Any]] = None,
        conversation_history: Optional[Iterable[Any]] = None,
        screenshot_url: Optional[str] = None,
    ) -> 'AgentContext':
        """Validate raw request values and freeze them into a context"""
        if not isinstance(user_query, str) or not user_query.strip():
            raise InvalidContextError("Message is required")

        history = []
        for turn in conversation_history or []:
            if isinstance(turn, Message):
                history.append(turn)
                continue
            role = turn.get('role') if isinstance(turn, dict) else None
            if role not in MESSAGE_ROLES:
                raise InvalidContextError(f"Unknown conversation role: {role!r}")
            history.append(Message(role=role, content=str(turn.get('content', ''))))

        return cls(
            user_query=user_query.strip(),
            language=Language.parse(language),
            user_role=UserRole.parse(user_role),
            dashboard_data=copy.deepcopy(dashboard_data) if dashboard_data else None,
            conversation_history=tuple(history),
            screenshot_url=screenshot_url or None,
        )

    def recent_history(self, turns: int) -> List[Dict[str, str]]:
        """Last `turns` messages, oldest first"""
        if turns <= 0:
            return []
        return [m.to_dict() for m in self.conversation_history[-turns:]]

    def dashboard_json(self) -> Optional[str]:
        if not self.dashboard_data:
            return None
        return json.dumps(self.dashboard_data, indent=2, ensure_ascii=False, default=str)
