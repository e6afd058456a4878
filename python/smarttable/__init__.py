"""smarttable - a small spreadsheet grid with an arithmetic formula engine.

Usage::

    from smarttable import ColumnConfig, Table

    table = Table(
        {"A": {1: "Widget"}, "B": {1: 3}, "C": {1: 2.5}, "D": {1: "=B1*C1"}},
        row_count=1,
    )
    evaluator = table.evaluator()
    evaluator.resolve_cell_value(table["D1"], "D1")   # 7.5
    evaluator.get_dependent_cells("B1")               # ["D1"]
"""

from smarttable._config import TableLimits
from smarttable._table import ColumnConfig, Table
from smarttable.calc import FormulaEvaluator, FormulaResult

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ColumnConfig",
    "FormulaEvaluator",
    "FormulaResult",
    "Table",
    "TableLimits",
]
