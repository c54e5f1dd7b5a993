"""hms-tables - A hospital management system over plain-text tables."""

from hms_tables.commands import Command, CommandStack
from hms_tables.config import Config
from hms_tables.errors import HmsError
from hms_tables.fixed_table import FixedTable
from hms_tables.joint_table import JointTable
from hms_tables.parsing import QueryParser
from hms_tables.query import TableQuery
from hms_tables.query_executor import QueryExecutor, QueryResult
from hms_tables.sparse_table import Entry, SparseTable
from hms_tables.system import HospitalSystem, Role, Session, init_data_dir

__all__ = [
    # Main API
    "HospitalSystem",
    "Session",
    "Role",
    "Config",
    "init_data_dir",
    # Tables
    "FixedTable",
    "SparseTable",
    "JointTable",
    "Entry",
    "TableQuery",
    # Commands
    "Command",
    "CommandStack",
    # Queries
    "QueryParser",
    "QueryExecutor",
    "QueryResult",
    # Errors
    "HmsError",
]

__version__ = "0.1.0"
