from .mock_source import MockCaptureSource

__all__ = ["MockCaptureSource"]
