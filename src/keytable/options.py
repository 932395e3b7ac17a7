"""Engine wide options.

A few behaviours of the engine can be tuned at runtime through
the module level :data:`options` object::

    from keytable.options import options
    options.cartesian_multiplicity = 10

or temporarily, restoring the previous values on exit:

>>> from keytable.options import options, option_context
>>> with option_context(cartesian_multiplicity=3):
...     options.cartesian_multiplicity
3
>>> options.cartesian_multiplicity is None
True
"""

import contextlib
import dataclasses
from typing import Any, Iterator

__all__ = ("Options", "options", "option_context")


@dataclasses.dataclass
class Options:
    """Tunable options of the engine.

    :ivar cartesian_multiplicity: How many rows of the left table a single
        row of the right table can match in a join before a
        :class:`keytable.errors.CartesianError` is raised.
        ``None`` means the join fails only when the result would have more
        rows than both inputs combined.
    :ivar dcast_sep: Separator used to build the names of the columns
        generated by :func:`keytable.compute.dcast` when more than one
        column key is involved.
    :ivar missing_label: Label used in generated column names for missing values.
    """

    cartesian_multiplicity: int | None = None
    dcast_sep: str = "_"
    missing_label: str = "NA"

    # Keys always sort with missing values last, this is not configurable
    # but exposed so that callers can discover it.
    null_placement: str = dataclasses.field(default="at_end", init=False)

    def update(self, **values: Any) -> None:
        """Set multiple options at once, rejecting unknown ones."""
        known = {f.name for f in dataclasses.fields(self) if f.init}
        unknown = set(values) - known
        if unknown:
            raise AttributeError(f"Unknown options: {sorted(unknown)}")
        for name, value in values.items():
            setattr(self, name, value)


options = Options()


@contextlib.contextmanager
def option_context(**values: Any) -> Iterator[Options]:
    """Temporarily override options within a ``with`` block."""
    previous = {name: getattr(options, name) for name in values}
    options.update(**values)
    try:
        yield options
    finally:
        options.update(**previous)
