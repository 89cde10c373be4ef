"""Errors raised while loading witx documents and generating bindings"""


class WitxgenError(Exception):
    """Base class for every error the generator reports"""


class LoadError(WitxgenError):
    """Input document could not be read or is malformed"""

    def __init__(self, message: str, path=None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class UnsupportedShapeError(WitxgenError):
    """The generator has no rendering for this shape.

    These are coverage defects of the generator itself, never conditions
    a caller is expected to recover from.
    """


class UnsupportedResultCountError(UnsupportedShapeError):
    """A function declares more than one result value"""

    def __init__(self, count: int, name: str = None):
        self.count = count
        self.name = name
        where = f" for {name!r}" if name else ""
        super().__init__(f"unsupported number of return values{where}: {count}")


class UnknownInstructionError(UnsupportedShapeError):
    """An instruction outside the closed instruction set reached the engine"""

    def __init__(self, instruction):
        self.instruction = instruction
        super().__init__(f"unimplemented instruction {instruction!r}")


class ArityError(UnsupportedShapeError):
    """Operand stack discipline was violated"""


class OutputError(WitxgenError):
    """A generated file could not be written"""
