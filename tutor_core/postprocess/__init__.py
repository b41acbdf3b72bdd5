from tutor_core.postprocess.processor import ProcessedText, ResponsePostProcessor

__all__ = ["ProcessedText", "ResponsePostProcessor"]
