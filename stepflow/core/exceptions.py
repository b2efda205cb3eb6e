"""
Custom exceptions for the stepflow system.

The diagram engine itself never raises for data inconsistencies; these
exceptions cover scenario loading, rendering, export and explanation
failures so callers can handle each stage precisely.
"""


class StepFlowError(Exception):
    """Base exception for all stepflow errors."""
    pass


# ============================================
# Configuration Errors
# ============================================

class ConfigurationError(StepFlowError):
    """Raised when configuration is invalid or missing."""
    pass


# ============================================
# Scenario Errors
# ============================================

class ScenarioError(StepFlowError):
    """Base class for scenario loading errors."""
    pass


class ScenarioNotFoundError(ScenarioError):
    """Raised when a scenario id or file cannot be located."""

    def __init__(self, scenario: str, available=()):
        self.scenario = scenario
        self.available = tuple(available)
        message = f"Unknown scenario '{scenario}'"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class ScenarioValidationError(ScenarioError):
    """Raised when a scenario document does not match the schema."""
    pass


# ============================================
# Rendering Errors
# ============================================

class RenderingError(StepFlowError):
    """Base class for rendering errors."""
    pass


class SurfaceRenderError(RenderingError):
    """Raised when the diagram surface cannot be drawn."""
    pass


# ============================================
# Capture Errors
# ============================================

class CaptureError(StepFlowError):
    """Base class for capture errors."""
    pass


class FrameCaptureError(CaptureError):
    """Raised when a browser screenshot of a frame fails."""
    pass


# ============================================
# Encoding Errors
# ============================================

class EncodingError(StepFlowError):
    """Base class for encoding errors."""
    pass


class FFmpegError(EncodingError):
    """Raised when FFmpeg processing fails."""
    pass


class GIFGenerationError(EncodingError):
    """Raised when GIF generation fails."""
    pass


# ============================================
# LLM Errors
# ============================================

class LLMError(StepFlowError):
    """Base class for LLM-related errors."""
    pass


class LLMTimeoutError(LLMError):
    """Raised when LLM request times out."""
    pass


class LLMResponseError(LLMError):
    """Raised when LLM response is invalid or unparseable."""
    pass
