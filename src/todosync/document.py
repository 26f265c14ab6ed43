"""
Editor document access.

Documents are ProseMirror-style JSON trees: every node is a dict with a
``type``, optional ``attrs`` and optional ``content`` (a list of child nodes);
text nodes carry a ``text`` string. To-do nodes use the ``todo`` type and keep
their metadata in camelCase attributes.
"""

from __future__ import annotations

import copy
import uuid
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set

from .errors import DocumentError
from .logging_config import get_logger
from .models import TodoNode
from .utils import format_timestamp, parse_timestamp, utcnow

logger = get_logger(__name__)

TODO_NODE_TYPE = "todo"

Node = Dict[str, Any]
ChangeCallback = Callable[["EditorDocument"], None]

# Attributes an external update may change; content is handled separately.
_UPDATABLE_ATTRS = frozenset({"completed", "assignedTo", "projectId", "dueDate"})


def empty_document() -> Node:
    return {"type": "doc", "content": []}


def _children(node: Node) -> List[Node]:
    content = node.get("content")
    if content is None:
        return []
    if not isinstance(content, list):
        raise DocumentError(f"content of a {node.get('type')!r} node must be a list")
    return content


# PUBLIC_INTERFACE
def iter_nodes(doc: Node) -> Iterator[Node]:
    """Yield every descendant of ``doc`` in document (pre-order) order."""
    if not isinstance(doc, dict):
        raise DocumentError("document must be a JSON object")
    stack = list(reversed(_children(doc)))
    while stack:
        node = stack.pop()
        if not isinstance(node, dict):
            raise DocumentError("document nodes must be JSON objects")
        yield node
        stack.extend(reversed(_children(node)))


# PUBLIC_INTERFACE
def node_text(node: Node) -> str:
    """Concatenate the text of the directly nested inline children of ``node``."""
    return "".join(
        child.get("text") or ""
        for child in _children(node)
        if isinstance(child, dict) and child.get("type") == "text"
    )


def _timestamp_attr(attrs: Mapping[str, Any], name: str, todo_id: str):
    try:
        return parse_timestamp(attrs.get(name))
    except ValueError as e:
        raise DocumentError(f"todo {todo_id}: invalid {name}: {e}") from e


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# PUBLIC_INTERFACE
def find_todos(
    doc: Node,
    *,
    assign_ids: bool = True,
    node_type: str = TODO_NODE_TYPE,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> List[TodoNode]:
    """
    Extract every to-do node of ``doc`` in document order.

    When ``assign_ids`` is set, a node without an id (or whose id repeats an
    earlier node, as happens after copy and paste) receives a fresh id, and a
    node without ``createdAt`` is stamped with the current time. Both are
    written back into the node attributes before this returns, so later
    extractions see the same identity.

    Raises:
        DocumentError: on malformed nodes or unparsable timestamps.
    """
    todos: List[TodoNode] = []
    seen: Set[str] = set()
    for node in iter_nodes(doc):
        if node.get("type") != node_type:
            continue
        attrs = node.get("attrs")
        if attrs is None:
            attrs = {}
            if assign_ids:
                node["attrs"] = attrs
        elif not isinstance(attrs, dict):
            raise DocumentError("node attrs must be a JSON object")

        todo_id = _optional_str(attrs.get("id"))
        if todo_id is None or todo_id in seen:
            fresh = id_factory()
            if todo_id is not None:
                logger.info("Duplicate todo id %s in document, reassigning to %s", todo_id, fresh)
            todo_id = fresh
            if assign_ids:
                attrs["id"] = todo_id
        seen.add(todo_id)

        created_at = _timestamp_attr(attrs, "createdAt", todo_id)
        if created_at is None:
            created_at = utcnow()
            if assign_ids:
                attrs["createdAt"] = format_timestamp(created_at)

        todos.append(
            TodoNode(
                id=todo_id,
                content=node_text(node),
                completed=bool(attrs.get("completed")),
                assigned_to=_optional_str(attrs.get("assignedTo")),
                project_id=_optional_str(attrs.get("projectId")),
                due_date=_timestamp_attr(attrs, "dueDate", todo_id),
                created_at=created_at,
                updated_at=_timestamp_attr(attrs, "updatedAt", todo_id),
            )
        )
    return todos


# PUBLIC_INTERFACE
class EditorDocument:
    """
    In-process stand-in for the editor runtime of one open document.

    Holds the document tree, notifies subscribers after every mutation and
    gives the sync machinery read access to its to-do nodes.
    """

    def __init__(self, content: Optional[Node] = None, *, node_type: str = TODO_NODE_TYPE) -> None:
        self._lock = RLock()
        self._node_type = node_type
        self._content = self._validated(content)
        self._listeners: List[ChangeCallback] = []
        self.version = 0

    @staticmethod
    def _validated(content: Optional[Node]) -> Node:
        if content is None:
            return empty_document()
        if not isinstance(content, dict) or "type" not in content:
            raise DocumentError("document must be a JSON object with a 'type'")
        doc = copy.deepcopy(content)
        # Walk once so structural errors surface at the mutation, not in a later pass.
        for _ in iter_nodes(doc):
            pass
        return doc

    @property
    def content(self) -> Node:
        """A deep copy of the current document tree."""
        with self._lock:
            return copy.deepcopy(self._content)

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a mutation callback; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _unsubscribe

    def _changed(self) -> None:
        with self._lock:
            self.version += 1
            listeners = list(self._listeners)
        for callback in listeners:
            callback(self)

    def replace(self, content: Node) -> None:
        """Replace the whole document, as an editor transaction would."""
        doc = self._validated(content)
        with self._lock:
            self._content = doc
        self._changed()

    def todos(self) -> List[TodoNode]:
        """Extract the to-do nodes, persisting generated ids into the tree."""
        with self._lock:
            return find_todos(self._content, assign_ids=True, node_type=self._node_type)

    def _find_node(self, todo_id: str) -> Optional[Node]:
        for node in iter_nodes(self._content):
            if node.get("type") == self._node_type and _optional_str((node.get("attrs") or {}).get("id")) == todo_id:
                return node
        return None

    def get_todo(self, todo_id: str) -> Optional[TodoNode]:
        for todo in self.todos():
            if todo.id == todo_id:
                return todo
        return None

    def update_todo(self, todo_id: str, changes: Mapping[str, Any]) -> bool:
        """
        Apply an update coming from outside the editor (a task board, another
        client) to the to-do node with ``todo_id``.

        ``changes`` uses node attribute names (completed, assignedTo, projectId,
        dueDate) and may carry ``content`` to replace the node's text.
        ``updatedAt`` is stamped with the current time.

        Returns:
            True if the node was found and updated, False otherwise.
        """
        unknown = set(changes) - _UPDATABLE_ATTRS - {"content"}
        if unknown:
            raise DocumentError(f"unsupported todo attributes: {', '.join(sorted(unknown))}")
        with self._lock:
            # Make sure ids generated for new nodes exist before looking one up.
            find_todos(self._content, assign_ids=True, node_type=self._node_type)
            node = self._find_node(todo_id)
            if node is None:
                return False
            attrs = node.setdefault("attrs", {})
            for name, value in changes.items():
                if name == "content":
                    node["content"] = [{"type": "text", "text": value}] if value else []
                else:
                    attrs[name] = value
            attrs["updatedAt"] = format_timestamp(utcnow())
        self._changed()
        return True
