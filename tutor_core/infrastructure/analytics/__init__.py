from tutor_core.infrastructure.analytics.recorder import BackgroundDispatcher, InteractionRecorder

__all__ = ["BackgroundDispatcher", "InteractionRecorder"]
