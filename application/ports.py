from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

from core import Task, TaskGraph


class TaskStorage(Protocol):
    def read(self) -> TaskGraph:
        ...

    def write(self, graph: Union[TaskGraph, Iterable[Task]]) -> None:
        ...

    def identifier(self) -> str:
        ...


class IssueGateway(Protocol):
    def get_issue(self, number: int) -> Dict[str, Any]:
        ...

    def list_issues(self, label: Optional[str] = None, state: str = "all") -> List[Dict[str, Any]]:
        ...

    def create_issue(self, title: str, body: str, labels: List[str]) -> Dict[str, Any]:
        ...

    def update_issue(self, number: int, **fields: Any) -> Dict[str, Any]:
        ...
