"""
Errors raised by the expression sandbox.
"""


class ExpressionError(Exception):
    """Base error for expression parsing and evaluation."""
    pass


class PathSyntaxError(ExpressionError):
    """A variable path does not follow the path grammar."""
    pass


class LexerError(ExpressionError):
    """Error during lexing."""
    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(f"{message} at position {position}")


class ParseError(ExpressionError):
    """Error during parsing."""
    def __init__(self, message: str, position: int = None):
        self.position = position
        if position is not None:
            super().__init__(f"{message} at position {position}")
        else:
            super().__init__(message)


class EvaluationError(ExpressionError):
    """Error while evaluating a parsed expression."""
    pass


class FunctionError(EvaluationError):
    """Error during function execution."""
    def __init__(self, function_name: str, message: str):
        self.function_name = function_name
        super().__init__(f"Function '{function_name}' failed: {message}")


class BudgetExceededError(EvaluationError):
    """The evaluation ran out of steps or time."""
    pass
