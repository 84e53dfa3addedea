import abc
import typing

import rich.console
import rich.table
import rich.text
import rich.tree

def to_string(
    ro: rich.table.Table | rich.tree.Tree,
    *,
    width: int = 200,
    no_wrap: bool = True,
    **kwargs,
) -> str:
    """
    Use :py:class:`rich.console.Console` in capture mode to render a :py:mod:`rich`
    object to a string.
    """
    with rich.console.Console(width = width, **kwargs) as console, console.capture() as capture:
        console.print(ro, no_wrap = no_wrap)
    return capture.get()

def verbatim(value: object) -> rich.text.Text:
    """
    Wrap `value` so that it is not read as console markup.

    Array descriptors (*e.g.* ``[Ljava/lang/String;``) would otherwise be taken for markup tags.

    >>> from dexpatch.utils.rich_helpers import verbatim, to_string
    >>> import rich.table
    >>> rt = rich.table.Table(show_header = False, box = None)
    >>> rt.add_column()
    >>> rt.add_row(verbatim("[Ljava/lang/String;"))
    >>> to_string(rt).strip()
    '[Ljava/lang/String;'
    """
    return rich.text.Text(str(value))

class TableMixin(metaclass = abc.ABCMeta):
    """
    Define :py:meth:`__str__` based on the :py:class:`rich.table.Table` representation from :py:meth:`to_table`.
    """
    @abc.abstractmethod
    def to_table(self) -> rich.table.Table:
        """
        Convert to a :py:class:`rich.table.Table`.
        """

    @typing.final
    def __str__(self) -> str:
        """
        Use :py:class:`rich.console.Console` in capture mode.
        """
        return to_string(self.to_table())

class TreeMixin(metaclass = abc.ABCMeta):
    """
    Define :py:meth:`__str__` based on the :py:class:`rich.tree.Tree` representation from :py:meth:`to_tree`.
    """
    @abc.abstractmethod
    def to_tree(self) -> rich.tree.Tree:
        """
        Convert to a :py:class:`rich.tree.Tree`.
        """

    @typing.final
    def __str__(self) -> str:
        """
        Use :py:class:`rich.console.Console` in capture mode.
        """
        return to_string(self.to_tree())
