"""
A pretty-printer for values displayed by cells.
"""
import asyncio
import collections.abc
import types


class Printer:
    """Formats Python values into readable display strings."""

    def __init__(self, indent_width=2, inline_width=60):
        self._indent_char = " " * indent_width
        self._inline_width = inline_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, BaseException):
            return self._pformat_exception
        if isinstance(obj, asyncio.Future):
            return self._pformat_future
        if isinstance(obj, collections.abc.Mapping):
            return self._pformat_dict
        if isinstance(obj, (list, tuple, set, frozenset)):
            return self._pformat_sequence
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_primitive,
            type(None): self._pformat_primitive,
            types.ModuleType: self._pformat_module,
            types.CoroutineType: self._pformat_coroutine,
        }

    def _pformat_primitive(self, obj, level):
        return repr(obj)

    def _pformat_str(self, obj, level):
        return repr(obj)

    def _pformat_module(self, obj, level):
        return f"<module {obj.__name__!r}>"

    def _pformat_coroutine(self, obj, level):
        return f"<coroutine {obj.__qualname__}>"

    def _pformat_exception(self, obj, level):
        msg = str(obj)
        return f"{type(obj).__name__}: {msg}" if msg else type(obj).__name__

    def _pformat_future(self, obj, level):
        kind = "Task" if isinstance(obj, asyncio.Task) else "Future"
        if not obj.done():
            return f"{kind} {{ <pending> }}"
        if obj.cancelled():
            return f"{kind} {{ <cancelled> }}"
        exc = obj.exception()
        if exc is not None:
            return f"{kind} {{ <rejected> {self._pformat_exception(exc, level)} }}"
        return f"{kind} {{ {self.pformat(obj.result(), level)} }}"

    def _pformat_block(self, items, level, open_char, close_char):
        if not items:
            return f"{open_char}{close_char}"
        inline = ", ".join(items)
        if "\n" not in inline and len(inline) <= self._inline_width:
            return f"{open_char}{inline}{close_char}"

        outer_indent = self._indent_char * level
        inner_indent = self._indent_char * (level + 1)
        lines = [f"{inner_indent}{item}," for item in items]
        return f"{open_char}\n" + "\n".join(lines) + f"\n{outer_indent}{close_char}"

    def _pformat_sequence(self, obj, level):
        items = [self.pformat(item, level + 1) for item in obj]
        if isinstance(obj, tuple):
            if len(items) == 1:
                return f"({items[0]},)"
            return self._pformat_block(items, level, "(", ")")
        if isinstance(obj, (set, frozenset)):
            if not items:
                return f"{type(obj).__name__}()"
            return self._pformat_block(items, level, "{", "}")
        return self._pformat_block(items, level, "[", "]")

    def _pformat_dict(self, obj, level):
        items = [
            f"{self.pformat(key, level + 1)}: {self.pformat(value, level + 1)}"
            for key, value in obj.items()
        ]
        return self._pformat_block(items, level, "{", "}")
