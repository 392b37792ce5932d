# import
## batteries
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
## package
from dbcopy.errors import SequenceInvariantError


# NULL marker in flat rows, distinct from empty text
NULL_TOKEN = "NULL"

# functions
def null_if_none(value: Any) -> str:
    """
    Encode a nullable value as a text field: None becomes NULL_TOKEN,
    empty string stays empty
    """
    if value is None:
        return NULL_TOKEN
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)

def none_if_null(field: str) -> Optional[str]:
    """Inverse of null_if_none for text fields"""
    if field == NULL_TOKEN:
        return None
    return field

def ordered_pairs(mapping: Optional[Dict[str, Any]]) -> List[Tuple[str, Any]]:
    """
    Materialize a key/value map into a list of pairs sorted by key,
    so that rows built from it come out in the same order on every export
    """
    if not mapping:
        return []
    return sorted(mapping.items(), key=lambda kv: kv[0])

# classes
class RowSequence:
    """
    Single level sequence: one row per parent.
    """
    def __init__(self, parents: Sequence[Any], make_row: Callable[[Any], List[str]]):
        if parents is None:
            raise SequenceInvariantError("parent list is None")
        self._parents = parents
        self._make_row = make_row
        self.cursor = 0

    def __iter__(self):
        return self

    def __next__(self) -> List[str]:
        if self.cursor >= len(self._parents):
            raise StopIteration
        row = self._make_row(self._parents[self.cursor])
        self.cursor += 1
        return row

class NestedSequence:
    """
    Lazy sequence of flat rows from a nested list, one row per leaf path.

    Keeps one saved cursor per level. On each pull, if the leaf cursor is past
    the end of its list, it moves up to the nearest level with a next item and
    descends again, skipping parents whose child list is empty. The sequence
    ends when the top level list is exhausted.

    Args:
        parents: Top level list
        children_of: One function per nested level, returns the child list of a node
        make_row: Called with the nodes on the path from the top level to the leaf
    """
    def __init__(self,
                 parents: Sequence[Any],
                 children_of: Sequence[Callable[[Any], Sequence[Any]]],
                 make_row: Callable[..., List[str]]):
        if parents is None:
            raise SequenceInvariantError("parent list is None")
        if not children_of:
            raise ValueError("at least one child level is required")
        self._children_of = list(children_of)
        self._make_row = make_row
        self._depth = len(self._children_of)
        # lists[k] is the list the level k cursor points into
        self._lists: List[Sequence[Any]] = [parents] + [[] for _ in range(self._depth)]
        self.cursors: List[int] = [-1] + [0] * self._depth
        self._done = False

    def __iter__(self):
        return self

    def _children(self, level: int, node: Any) -> Sequence[Any]:
        children = self._children_of[level](node)
        if children is None:
            raise SequenceInvariantError(
                f"child list is None at level {level + 1}, cursors {self.cursors}"
            )
        return children

    def _skip_ahead(self) -> bool:
        # position all cursors on a valid leaf, return False at the end of the sequence
        level = self._depth
        while True:
            if self.cursors[level] < len(self._lists[level]):
                if level == self._depth:
                    return True
                node = self._lists[level][self.cursors[level]]
                self._lists[level + 1] = self._children(level, node)
                level += 1
                self.cursors[level] = 0
            else:
                if level == 0:
                    return False
                level -= 1
                self.cursors[level] += 1

    def __next__(self) -> List[str]:
        if self._done:
            raise StopIteration
        if not self._skip_ahead():
            self._done = True
            raise StopIteration

        path = []
        for level in range(self._depth + 1):
            items = self._lists[level]
            pos = self.cursors[level]
            if pos < 0 or pos >= len(items):
                raise SequenceInvariantError(
                    f"cursor out of range at level {level}: {pos} of {len(items)}"
                )
            path.append(items[pos])

        self.cursors[self._depth] += 1
        return self._make_row(*path)

class TwoLevelSequence(NestedSequence):
    """
    parent -> child rows, e.g. type -> enum, parameter -> dimension
    """
    def __init__(self,
                 parents: Sequence[Any],
                 children_of: Callable[[Any], Sequence[Any]],
                 make_row: Callable[[Any, Any], List[str]]):
        super().__init__(parents, [children_of], make_row)

    @property
    def outer(self) -> int:
        return self.cursors[0]

    @property
    def inner(self) -> int:
        return self.cursors[1]

class ThreeLevelSequence(NestedSequence):
    """
    parent -> child -> grandchild rows, e.g. run -> parameter -> note
    """
    def __init__(self,
                 parents: Sequence[Any],
                 children_of: Callable[[Any], Sequence[Any]],
                 grandchildren_of: Callable[[Any], Sequence[Any]],
                 make_row: Callable[[Any, Any, Any], List[str]]):
        super().__init__(parents, [children_of, grandchildren_of], make_row)
