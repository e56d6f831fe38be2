class WmmError(Exception):
    pass

class SpecificationError(WmmError):
    """
    The memory model or the program is malformed (undefined or duplicate
    relation names, bad combinator operands, unreadable litmus input).
    """

class UnsupportedError(WmmError):
    """
    A relation or axiom kind has no encoding for the requested mode.
    """

class InvariantViolation(WmmError):
    """
    An internal assumption of the encoding does not hold. This is a bug,
    never a property of the input.
    """
