"""
Data models for context memory.

Models serialize to plain dicts using the camelCase field names of the
persisted shapes (``startTime``, ``projectStructure``...), so a value written
to a key-value store can be read back with ``from_dict``.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional


def utc_now() -> str:
    """Current time as an ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp.

    Naive timestamps are assumed to be UTC. Returns None when the value
    cannot be parsed.
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class TaskProgress:
    """Ordered lists of completed and pending task steps."""
    completed: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'completed': list(self.completed), 'pending': list(self.pending)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TaskProgress':
        return cls(
            completed=list(data.get('completed', [])),
            pending=list(data.get('pending', [])),
        )


@dataclass
class TaskContext:
    """
    Context of the task currently being worked on.

    Attributes:
        id: Task identifier, empty until a task is initialized
        scope: Free-form description of what the task covers
        stage: Free-form name of the current stage
        progress: Completed and pending steps
        start_time: ISO timestamp of task initialization
        last_update_time: ISO timestamp of the last task update
    """
    id: str = ''
    scope: str = ''
    stage: str = ''
    progress: TaskProgress = field(default_factory=TaskProgress)
    start_time: str = field(default_factory=utc_now)
    last_update_time: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'scope': self.scope,
            'stage': self.stage,
            'progress': self.progress.to_dict(),
            'startTime': self.start_time,
            'lastUpdateTime': self.last_update_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TaskContext':
        now = utc_now()
        return cls(
            id=data.get('id', ''),
            scope=data.get('scope', ''),
            stage=data.get('stage', ''),
            progress=TaskProgress.from_dict(data.get('progress') or {}),
            start_time=data.get('startTime', now),
            last_update_time=data.get('lastUpdateTime', now),
        )


@dataclass
class ProjectStructure:
    """Layout of the project being worked on."""
    root: str = ''
    main_files: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'root': self.root,
            'mainFiles': list(self.main_files),
            'dependencies': list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectStructure':
        return cls(
            root=data.get('root', ''),
            main_files=list(data.get('mainFiles', [])),
            dependencies=list(data.get('dependencies', [])),
        )


@dataclass
class TechnicalContext:
    """Technical facts about the project/codebase."""
    framework: Optional[str] = None
    language: Optional[str] = None
    patterns: List[str] = field(default_factory=list)
    project_structure: ProjectStructure = field(default_factory=ProjectStructure)
    last_analyzed_files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'framework': self.framework,
            'language': self.language,
            'patterns': list(self.patterns),
            'projectStructure': self.project_structure.to_dict(),
            'lastAnalyzedFiles': list(self.last_analyzed_files),
        }
        # Optional fields are omitted rather than written as null
        for key in ('framework', 'language'):
            if result[key] is None:
                result.pop(key)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TechnicalContext':
        return cls(
            framework=data.get('framework'),
            language=data.get('language'),
            patterns=list(data.get('patterns', [])),
            project_structure=ProjectStructure.from_dict(data.get('projectStructure') or {}),
            last_analyzed_files=list(data.get('lastAnalyzedFiles', [])),
        )


@dataclass
class CommandEntry:
    command: str
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {'command': self.command, 'timestamp': self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommandEntry':
        return cls(command=data['command'], timestamp=data.get('timestamp', utc_now()))


@dataclass
class PatternEntry:
    pattern: str
    occurrences: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {'pattern': self.pattern, 'occurrences': self.occurrences}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatternEntry':
        return cls(pattern=data['pattern'], occurrences=int(data.get('occurrences', 1)))


@dataclass
class MistakeEntry:
    type: str
    description: str
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'description': self.description, 'timestamp': self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MistakeEntry':
        return cls(
            type=data['type'],
            description=data.get('description', ''),
            timestamp=data.get('timestamp', utc_now()),
        )


@dataclass
class UserHistory:
    """
    Bounded user history lists.

    Attributes:
        recent_commands: Most recent first, capped FIFO
        common_patterns: Ordered by occurrences, highest first
        mistakes: Most recent first, capped FIFO
    """
    recent_commands: List[CommandEntry] = field(default_factory=list)
    common_patterns: List[PatternEntry] = field(default_factory=list)
    mistakes: List[MistakeEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recentCommands': [c.to_dict() for c in self.recent_commands],
            'commonPatterns': [p.to_dict() for p in self.common_patterns],
            'mistakes': [m.to_dict() for m in self.mistakes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserHistory':
        return cls(
            recent_commands=[CommandEntry.from_dict(c) for c in data.get('recentCommands', [])],
            common_patterns=[PatternEntry.from_dict(p) for p in data.get('commonPatterns', [])],
            mistakes=[MistakeEntry.from_dict(m) for m in data.get('mistakes', [])],
        )


@dataclass
class UserContext:
    preferences: Dict[str, Any] = field(default_factory=dict)
    history: UserHistory = field(default_factory=UserHistory)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'preferences': copy.deepcopy(self.preferences),
            'history': self.history.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserContext':
        return cls(
            preferences=copy.deepcopy(data.get('preferences', {})),
            history=UserHistory.from_dict(data.get('history') or {}),
        )


@dataclass
class ContextMemory:
    """Complete context memory state: task, technical and user context."""
    task: TaskContext = field(default_factory=TaskContext)
    technical: TechnicalContext = field(default_factory=TechnicalContext)
    user: UserContext = field(default_factory=UserContext)

    @classmethod
    def empty(cls) -> 'ContextMemory':
        """Create the state of a manager that has not been initialized yet."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task': self.task.to_dict(),
            'technical': self.technical.to_dict(),
            'user': self.user.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContextMemory':
        return cls(
            task=TaskContext.from_dict(data.get('task') or {}),
            technical=TechnicalContext.from_dict(data.get('technical') or {}),
            user=UserContext.from_dict(data.get('user') or {}),
        )
