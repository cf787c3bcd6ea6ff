from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class MergeRequestState(Enum):
    """Merge request states reported by GitLab"""

    OPENED = "opened"
    MERGED = "merged"
    CLOSED = "closed"
    LOCKED = "locked"

    @property
    def is_terminal(self) -> bool:
        """Merged and closed merge requests are never watched again."""
        return self in (MergeRequestState.MERGED, MergeRequestState.CLOSED)


@dataclass
class User:
    """GitLab user identity"""

    id: int
    username: str
    name: Optional[str] = None
    web_url: Optional[str] = None

    @classmethod
    def from_gitlab_response(cls, data: Dict) -> 'User':
        """Create User from a GitLab user (or author) object"""
        return cls(
            id=data['id'],
            username=data['username'],
            name=data.get('name'),
            web_url=data.get('web_url'),
        )

    def __str__(self) -> str:
        return f"User(id={self.id}, username={self.username})"


@dataclass
class Project:
    """GitLab project information"""

    id: int
    name: str
    path_with_namespace: str
    web_url: Optional[str] = None

    @classmethod
    def from_gitlab_response(cls, data: Dict) -> 'Project':
        return cls(
            id=data['id'],
            name=data['name'],
            path_with_namespace=data.get('path_with_namespace', data['name']),
            web_url=data.get('web_url'),
        )


@dataclass
class MergeRequest:
    """Snapshot of a merge request as returned by a single fetch"""

    id: int
    project_id: int
    iid: int
    source_project_id: int
    source_branch: str
    author: User
    state: str  # "opened", "merged", "closed", "locked", ...
    title: str = ''
    web_url: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        try:
            return MergeRequestState(self.state).is_terminal
        except ValueError:
            # states this client does not know about keep the watcher running
            return False

    @property
    def reference(self) -> str:
        return f"{self.project_id}!{self.iid}"

    @classmethod
    def from_gitlab_response(cls, data: Dict) -> 'MergeRequest':
        """Create MergeRequest from GitLab REST API response"""
        return cls(
            id=data['id'],
            project_id=data['project_id'],
            iid=data['iid'],
            source_project_id=data.get('source_project_id', data['project_id']),
            source_branch=data['source_branch'],
            author=User.from_gitlab_response(data['author']),
            state=data['state'],
            title=data.get('title', ''),
            web_url=data.get('web_url'),
            updated_at=data.get('updated_at'),
        )

    def __str__(self) -> str:
        return f"MergeRequest(id={self.id}, ref={self.reference}, state={self.state})"


@dataclass
class Pipeline:
    """Latest pipeline of a merge request source branch"""

    id: int
    status: str  # "created", "pending", "running", "success", "failed", ...
    ref: Optional[str] = None
    sha: Optional[str] = None
    web_url: Optional[str] = None

    @classmethod
    def from_gitlab_response(cls, data: Dict) -> 'Pipeline':
        return cls(
            id=data['id'],
            status=data['status'],
            ref=data.get('ref'),
            sha=data.get('sha'),
            web_url=data.get('web_url'),
        )


@dataclass
class PipelineUpdate:
    """Payload of an updated-pipeline event"""

    merge_request: MergeRequest
    pipeline: Pipeline


@dataclass
class Todo:
    """A pending GitLab todo notification"""

    id: int
    created_at: str
    action_name: Optional[str] = None
    target_type: Optional[str] = None
    body: Optional[str] = None
    target_url: Optional[str] = None

    @classmethod
    def from_gitlab_response(cls, data: Dict) -> 'Todo':
        return cls(
            id=data['id'],
            created_at=data['created_at'],
            action_name=data.get('action_name'),
            target_type=data.get('target_type'),
            body=data.get('body'),
            target_url=data.get('target_url'),
        )


@dataclass
class TodoPage:
    """One todos fetch: the listed items plus the server-side total"""

    items: List[Todo] = field(default_factory=list)
    total_count: int = 0
