# errors.py


class FormFlowError(Exception):
    """Base class for everything the scan/replay core reports about a document."""


class ResolutionFailure(FormFlowError):
    """A recorded selector no longer matches any element."""

    def __init__(self, selector: str):
        super().__init__(f"selector did not resolve: {selector}")
        self.selector = selector


class NoFormFound(FormFlowError):
    def __init__(self, step_index: int):
        super().__init__(f"no form found for step {step_index + 1}")
        self.step_index = step_index


class AdvanceNotFound(FormFlowError):
    def __init__(self, step_index: int):
        super().__init__(f"no submit or advance control for step {step_index + 1}")
        self.step_index = step_index


class RowCancelled(FormFlowError):
    def __init__(self):
        super().__init__("stopped by user")


class Busy(FormFlowError):
    def __init__(self):
        super().__init__("a bulk run is already in progress")
