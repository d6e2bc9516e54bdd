# flow_designer/core/exceptions.py
class NodeNotFoundException(Exception):
    """Raised when a node is not found for a given ID."""
    def __init__(self, message="Node not found."):
        self.message = message
        super().__init__(self.message)


class FlowValidationError(Exception):
    """Raised when a candidate graph or edit breaks a flow invariant."""
    def __init__(self, message="Invalid flow."):
        self.message = message
        super().__init__(self.message)


class PromptTextEmptyError(Exception):
    def __init__(self, message="Prompt text is empty."):
        self.message = message
        super().__init__(self.message)


class ConfirmationRequiredError(Exception):
    """Raised when a destructive action is attempted without explicit confirmation."""
    def __init__(self, message="This action replaces the current flow and must be confirmed."):
        self.message = message
        super().__init__(self.message)


class GenerationError(Exception):
    """Raised when the generation collaborator fails or returns an unusable graph."""
    def __init__(self, message="Failed to generate flow."):
        self.message = message
        super().__init__(self.message)


class StaleGenerationError(GenerationError):
    """Raised when a generation result arrives after a newer request or after the generator closed."""
    def __init__(self, message="Generation result was superseded and has been discarded."):
        super().__init__(message)


class NoGeneratedFlowError(Exception):
    """Raised when drawing is requested but the generator holds no result."""
    def __init__(self, message="No generated flow to draw."):
        self.message = message
        super().__init__(self.message)
