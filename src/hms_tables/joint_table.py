"""A per-identifier view over several single-attribute sparse tables."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from hms_tables.errors import TableMismatchError, UndefinedVariableError
from hms_tables.sparse_table import NOT_FOUND, SparseTable


class JointTable:
    """Joins sparse tables that share an identifier domain.

    Every component has exactly two columns, the identifier and one
    attribute. The attribute name addresses the component.
    """

    def __init__(self, components: Sequence[SparseTable]) -> None:
        self._components: dict[str, SparseTable] = {}
        for table in components:
            if len(table.columns) != 2:
                raise TableMismatchError(
                    f"Joint table component {table.file_path.name} must have exactly 2 columns, "
                    f"has {len(table.columns)}"
                )
            self._components[table.columns[-1]] = table

    @property
    def attributes(self) -> list[str]:
        return list(self._components)

    def component(self, name: str) -> SparseTable:
        try:
            return self._components[name]
        except KeyError:
            raise UndefinedVariableError(f"Unknown variable name: {name}") from None

    def read_row(self, identifier: str) -> dict[str, list[str]]:
        """Entries of every attribute; empty where the identifier is absent."""
        return {
            name: table.entries(identifier) or []
            for name, table in self._components.items()
        }

    def read_attribute(self, identifier: str, name: str) -> list[str]:
        return self.component(name).entries(identifier) or []

    def add_row(self, identifier: str) -> None:
        """Ensure an identifier row in every component."""
        for table in self._components.values():
            table.ensure_row(identifier)

    def exists_any(self, identifier: str) -> bool:
        return any(table.exists(identifier) for table in self._components.values())

    def exists_all(self, identifier: str) -> bool:
        return all(table.exists(identifier) for table in self._components.values())

    def exists_in(self, identifier: str, name: str) -> bool:
        return self.component(name).exists(identifier)

    def add_value(self, identifier: str, name: str, text: str) -> None:
        self.component(name).append_entry(identifier, text)

    def remove_value(self, identifier: str, name: str, position: int) -> str:
        return self.component(name).remove_entry(identifier, position)

    def overwrite_value(self, identifier: str, name: str, position: int, text: str) -> None:
        self.component(name).update_entry(identifier, position, text)

    def find_index_of_value(self, identifier: str, name: str, predicate: Callable[[str], bool]) -> int:
        return self.component(name).find_entry_index(identifier, predicate)

    def get_value(self, identifier: str, name: str, position: int) -> str | None:
        return self.component(name).get_entry(identifier, position)

    def find_entry(self, identifier: str, name: str, predicate: Callable[[str], bool]) -> str | None:
        """Return the first entry satisfying predicate, or None."""
        table = self.component(name)
        position = table.find_entry_index(identifier, predicate)
        if position == NOT_FOUND:
            return None
        return table.get_entry(identifier, position)

    def close(self) -> None:
        for table in self._components.values():
            table.close()
