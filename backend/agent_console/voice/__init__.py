"""Voice module - speech synthesis for spoken assistant replies."""

from .tts import SpeechSynthesisError, SpeechSynthesizer, SynthesisResult

__all__ = ["SpeechSynthesisError", "SpeechSynthesizer", "SynthesisResult"]
