from tutor_core.fallback.generator import FallbackGenerator, FallbackTable, FallbackTemplate

__all__ = ["FallbackGenerator", "FallbackTable", "FallbackTemplate"]
